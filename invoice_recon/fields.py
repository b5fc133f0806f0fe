"""
Field definitions for invoice extraction.

Each extractable field is described by a FieldSpec: an ordered list of
pattern candidates (most specific first) and a check function that acts as
the field's validity predicate. The check returns the cleaned value when the
candidate is acceptable, or None to reject it and move on to the next match.

Fields are grouped as:
- Identifiers: invoice code, invoice number, issue date
- Counterparties: buyer/seller name and tax id (position-sensitive)
- Amounts: total, tax, pre-tax, tax rate, amount in words
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Optional

from .config import (
    DEFAULT_TAX_RATE,
    DISQUALIFYING_TOKENS,
    NAME_MAX_LENGTH,
    NAME_MIN_LENGTH,
    NUMERAL_CHARACTERS,
    ORGANIZATION_KEYWORDS,
    SOURCE_SEPARATOR,
    TAX_ID_MAX_LENGTH,
    TAX_ID_MIN_DIGITS,
    TAX_ID_MIN_LENGTH,
    TAX_RATE_SNAP_TOLERANCE,
    VALID_TAX_RATES,
)
from .numerals import from_words


# Takes the raw captured text, returns the cleaned value or None
FieldCheckFn = Callable[[str], Optional[str]]


class FieldKind(str, Enum):
    """Every field the extractors know how to find."""
    INVOICE_CODE = "invoice_code"
    INVOICE_NUMBER = "invoice_number"
    ISSUE_DATE = "issue_date"
    BUYER_NAME = "buyer_name"
    BUYER_TAX_ID = "buyer_tax_id"
    SELLER_NAME = "seller_name"
    SELLER_TAX_ID = "seller_tax_id"
    TOTAL_AMOUNT = "total_amount"
    TAX_AMOUNT = "tax_amount"
    PRE_TAX_AMOUNT = "pre_tax_amount"
    UNLABELED_AMOUNT = "unlabeled_amount"
    TAX_RATE = "tax_rate"
    AMOUNT_IN_WORDS = "total_amount_words"


class Role(str, Enum):
    """Counterparty role; buyers print in the first half, sellers in the second."""
    BUYER = "buyer"
    SELLER = "seller"


@dataclass
class FieldSpec:
    """
    Extraction definition for one field.

    Attributes:
        kind: The field this spec extracts
        description: Human-readable description
        patterns: Ordered regexes, each with a named group "value"
        check: Validity predicate and cleaner for a captured value
        fallback_patterns: Unlabeled patterns only trusted with positional support
        anchor: When set, patterns are searched in a window after each anchor match
        role: Counterparty role for position-sensitive fields
    """
    kind: FieldKind
    description: str
    patterns: list[re.Pattern]
    check: FieldCheckFn
    fallback_patterns: list[re.Pattern] = field(default_factory=list)
    anchor: Optional[re.Pattern] = None
    role: Optional[Role] = None


def _spaced(word: str) -> str:
    """Pattern for a CJK label that tolerates OCR spaces between characters."""
    return r"\s*".join(re.escape(ch) for ch in word)


def _compile(*patterns: str) -> list[re.Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


# ============================================================================
# Shared Pattern Fragments
# ============================================================================

_CURRENCY = r"[¥￥$]\s*"
_AMOUNT = r"(?P<value>\d{1,3}(?:,\d{3})+\.\d{2}|\d+\.\d{2})(?!\d)"
_NUMERAL = f"[{NUMERAL_CHARACTERS}]"
_NOT_TAX = r"(?<!税)(?<!税 )"

# Labels that end a counterparty name
_NAME_STOP = "|".join([
    _spaced("纳税人识别号"),
    _spaced("统一社会信用代码"),
    _spaced("税号"),
    _spaced("地址"),
    _spaced("电话"),
    _spaced("开户行"),
    _spaced("账号"),
    _spaced("密码区"),
    r"(?:购|买|销|售)?\s*名\s*称",
    _spaced("购买方"),
    _spaced("销售方"),
    _spaced("合计"),
    _spaced("价税"),
    r"\btax\s*id\b",
    r"\btaxpayer\b",
    r"\baddress\b",
    r"\btel\b",
    r"\bseller\b",
    r"\bbuyer\b",
    r"\bvendor\b",
    r"\bsupplier\b",
    r"[¥￥$]",
    re.escape(SOURCE_SEPARATOR),
])
_NAME_VALUE = rf"(?P<value>[^:]{{2,120}}?)(?=\s*(?:{_NAME_STOP})|\s*:|\s*$)"

_TAX_ID_LABEL = (
    rf"(?:{_spaced('统一社会信用代码')}(?:\s*/\s*{_spaced('纳税人识别号')})?"
    rf"|{_spaced('纳税人识别号')}|{_spaced('税号')}|tax\s*id)"
)
_TAX_ID_LABELED = rf"{_TAX_ID_LABEL}\s*:?\s*(?P<value>[0-9A-Za-z]{{15,20}})(?![0-9A-Za-z])"
_TAX_ID_BARE = r"(?<![0-9A-Za-z])(?P<value>[0-9A-Z]{15,20})(?![0-9A-Za-z])"

_BUYER_ANCHOR = re.compile(
    rf"{_spaced('购买方')}|{_spaced('购方')}|{_spaced('买方')}|(?:购|买)\s*名\s*称"
    r"|\bbuyer\b|\bpurchaser\b|\bbill\s+to\b",
    re.IGNORECASE,
)
_SELLER_ANCHOR = re.compile(
    rf"{_spaced('销售方')}|{_spaced('销方')}|{_spaced('售方')}|(?:销|售)\s*名\s*称"
    r"|\bseller\b|\bvendor\b|\bsupplier\b",
    re.IGNORECASE,
)

ROLE_ANCHORS: dict[Role, re.Pattern] = {
    Role.BUYER: _BUYER_ANCHOR,
    Role.SELLER: _SELLER_ANCHOR,
}


# ============================================================================
# Check Functions
# ============================================================================

def _digits(value: str) -> str:
    return re.sub(r"\D", "", value)


def check_invoice_code(value: str) -> Optional[str]:
    """Invoice codes carry 10-12 digits."""
    digits = _digits(value)
    if 10 <= len(digits) <= 12:
        return digits
    return None


def check_invoice_number(value: str) -> Optional[str]:
    """Invoice numbers carry exactly 8 digits."""
    digits = _digits(value)
    if len(digits) == 8:
        return digits
    return None


def check_issue_date(value: str) -> Optional[str]:
    """A YYYY年M月D日 token with a plausible month and day."""
    compact = re.sub(r"\s+", "", value)
    match = re.fullmatch(r"(\d{4})年(\d{1,2})月(\d{1,2})日", compact)
    if not match:
        return None
    month, day = int(match.group(2)), int(match.group(3))
    if not (1 <= month <= 12 and 1 <= day <= 31):
        return None
    return compact


def clean_company_name(value: str) -> str:
    """Trim separators and drop OCR spaces between CJK characters."""
    name = value.strip(" \t:;,.，。、")
    name = re.sub(r"(?<=[一-鿿()])\s+(?=[一-鿿()])", "", name)
    return name


def check_company_name(value: str) -> Optional[str]:
    """
    A counterparty name must look like an organization.

    Rejects candidates outside the length bounds, candidates without an
    organizational keyword, and candidates containing a disqualifying token
    (labels, amounts, currency symbols).
    """
    name = clean_company_name(value)
    if not (NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH):
        return None
    lowered = name.lower()
    if not any(kw in lowered for kw in ORGANIZATION_KEYWORDS):
        return None
    if any(token in lowered for token in DISQUALIFYING_TOKENS):
        return None
    return name


def check_tax_id(value: str) -> Optional[str]:
    """15-20 alphanumerics, uppercased, with at least 10 digits."""
    tax_id = value.strip().upper()
    if not re.fullmatch(r"[0-9A-Z]+", tax_id):
        return None
    if not (TAX_ID_MIN_LENGTH <= len(tax_id) <= TAX_ID_MAX_LENGTH):
        return None
    if len(_digits(tax_id)) < TAX_ID_MIN_DIGITS:
        return None
    return tax_id


def parse_amount(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse a monetary amount with exactly two fractional digits.

    Thousands separators and currency symbols are tolerated.
    """
    if value is None:
        return None
    value_str = re.sub(r"[¥￥$,\s]", "", str(value))
    if not re.fullmatch(r"\d+\.\d{2}", value_str):
        return None
    try:
        return Decimal(value_str)
    except InvalidOperation:
        return None


def check_amount(value: str) -> Optional[str]:
    amount = parse_amount(value)
    return None if amount is None else str(amount)


def snap_tax_rate(
    rate: Decimal,
    tolerance: Decimal = TAX_RATE_SNAP_TOLERANCE,
    default: Optional[int] = None,
) -> Optional[int]:
    """
    Snap a raw percentage to the nearest valid VAT rate.

    Returns the default when no valid rate lies within the tolerance.
    """
    nearest = min(VALID_TAX_RATES, key=lambda r: abs(Decimal(r) - rate))
    if abs(Decimal(nearest) - rate) <= tolerance:
        return nearest
    return default


def check_tax_rate(value: str) -> Optional[str]:
    """Tax-exempt marks mean 0%; numeric rates are snapped within one point."""
    if "免" in value:
        return "0"
    try:
        rate = Decimal(value.strip())
    except InvalidOperation:
        return None
    snapped = snap_tax_rate(rate)
    return None if snapped is None else str(snapped)


def check_amount_words(value: str) -> Optional[str]:
    """Numeral run containing a currency unit that parses to an amount."""
    words = re.sub(r"\s+", "", value)
    if not any(unit in words for unit in "元圆角分"):
        return None
    if from_words(words) is None:
        return None
    return words


# ============================================================================
# Field Registry
# ============================================================================

_NAME_FALLBACK = _compile(rf"名\s*称\s*:?\s*{_NAME_VALUE}")
_TAX_ID_PATTERNS = [re.compile(_TAX_ID_LABELED, re.IGNORECASE), re.compile(_TAX_ID_BARE)]

FIELD_SPECS: dict[FieldKind, FieldSpec] = {
    FieldKind.INVOICE_CODE: FieldSpec(
        kind=FieldKind.INVOICE_CODE,
        description="10-12 digit invoice code",
        patterns=_compile(
            rf"{_spaced('发票代码')}\s*:?\s*(?P<value>(?:\d\s?){{10,12}})(?!\d)",
            r"invoice\s*code\s*:?\s*(?P<value>(?:\d\s?){10,12})(?!\d)",
        ),
        check=check_invoice_code,
    ),
    FieldKind.INVOICE_NUMBER: FieldSpec(
        kind=FieldKind.INVOICE_NUMBER,
        description="8 digit invoice number",
        patterns=_compile(
            rf"{_spaced('发票号码')}\s*:?\s*(?P<value>(?:\d\s?){{8}})(?!\d)",
            r"invoice\s*(?:no\.?|number)\s*:?\s*(?P<value>\d{8})(?!\d)",
            r"\bNo\s*\.?\s*:?\s*(?P<value>\d{8})(?!\d)",
        ),
        check=check_invoice_number,
    ),
    FieldKind.ISSUE_DATE: FieldSpec(
        kind=FieldKind.ISSUE_DATE,
        description="Issue date (YYYY年M月D日)",
        patterns=_compile(
            rf"{_spaced('开票日期')}\s*:?\s*(?P<value>\d{{4}}\s*年\s*\d{{1,2}}\s*月\s*\d{{1,2}}\s*日)",
            r"(?P<value>\d{4}\s*年\s*\d{1,2}\s*月\s*\d{1,2}\s*日)",
        ),
        check=check_issue_date,
    ),
    FieldKind.BUYER_NAME: FieldSpec(
        kind=FieldKind.BUYER_NAME,
        description="Buyer company name",
        patterns=_compile(
            rf"{_spaced('购买方')}\s*(?:信\s*息\s*)?名\s*称\s*:?\s*{_NAME_VALUE}",
            rf"(?:购|买)\s*名\s*称\s*:?\s*{_NAME_VALUE}",
            rf"(?:buyer|purchaser|bill\s+to)(?:\s+name)?\s*:\s*{_NAME_VALUE}",
        ),
        fallback_patterns=_NAME_FALLBACK,
        check=check_company_name,
        role=Role.BUYER,
    ),
    FieldKind.SELLER_NAME: FieldSpec(
        kind=FieldKind.SELLER_NAME,
        description="Seller company name",
        patterns=_compile(
            rf"{_spaced('销售方')}\s*(?:信\s*息\s*)?名\s*称\s*:?\s*{_NAME_VALUE}",
            rf"(?:销|售)\s*名\s*称\s*:?\s*{_NAME_VALUE}",
            rf"(?:seller|vendor|supplier)(?:\s+name)?\s*:\s*{_NAME_VALUE}",
        ),
        fallback_patterns=_NAME_FALLBACK,
        check=check_company_name,
        role=Role.SELLER,
    ),
    FieldKind.BUYER_TAX_ID: FieldSpec(
        kind=FieldKind.BUYER_TAX_ID,
        description="Buyer taxpayer identification number",
        patterns=_TAX_ID_PATTERNS,
        fallback_patterns=_compile(_TAX_ID_LABELED),
        check=check_tax_id,
        anchor=_BUYER_ANCHOR,
        role=Role.BUYER,
    ),
    FieldKind.SELLER_TAX_ID: FieldSpec(
        kind=FieldKind.SELLER_TAX_ID,
        description="Seller taxpayer identification number",
        patterns=_TAX_ID_PATTERNS,
        fallback_patterns=_compile(_TAX_ID_LABELED),
        check=check_tax_id,
        anchor=_SELLER_ANCHOR,
        role=Role.SELLER,
    ),
    FieldKind.TOTAL_AMOUNT: FieldSpec(
        kind=FieldKind.TOTAL_AMOUNT,
        description="Total amount including tax",
        patterns=_compile(
            rf"\(\s*小\s*写\s*\)\s*:?\s*{_CURRENCY}{_AMOUNT}",
            rf"{_spaced('价税合计')}[^¥￥$]{{0,60}}?{_CURRENCY}{_AMOUNT}",
            rf"\btotal(?:\s+amount)?(?:\s+including\s+tax)?\s*:?\s*{_CURRENCY}{_AMOUNT}",
        ),
        check=check_amount,
    ),
    FieldKind.PRE_TAX_AMOUNT: FieldSpec(
        kind=FieldKind.PRE_TAX_AMOUNT,
        description="Amount before tax",
        patterns=_compile(
            rf"{_NOT_TAX}合\s*计\s*:?\s*{_CURRENCY}{_AMOUNT}",
            rf"{_NOT_TAX}金\s*额\s*:?\s*{_CURRENCY}{_AMOUNT}",
            rf"\b(?:pre-?tax\s+amount|subtotal|net\s+amount)\s*:?\s*{_CURRENCY}{_AMOUNT}",
            rf"(?<!tax )(?<!total )\bamount\s*:?\s*{_CURRENCY}{_AMOUNT}",
        ),
        check=check_amount,
    ),
    FieldKind.TAX_AMOUNT: FieldSpec(
        kind=FieldKind.TAX_AMOUNT,
        description="Tax amount",
        patterns=_compile(
            rf"{_NOT_TAX}合\s*计\s*:?\s*{_CURRENCY}[\d,]+\.\d{{2}}\s*{_CURRENCY}{_AMOUNT}",
            rf"(?<!价)税\s*额\s*:?\s*{_CURRENCY}{_AMOUNT}",
            rf"(?<!including )\btax(?:\s+amount)?\s*:?\s*{_CURRENCY}{_AMOUNT}",
        ),
        check=check_amount,
    ),
    FieldKind.UNLABELED_AMOUNT: FieldSpec(
        kind=FieldKind.UNLABELED_AMOUNT,
        description="Currency-prefixed amount without a recognizable label",
        patterns=_compile(rf"{_CURRENCY}{_AMOUNT}"),
        check=check_amount,
    ),
    FieldKind.TAX_RATE: FieldSpec(
        kind=FieldKind.TAX_RATE,
        description=f"Tax rate snapped to {VALID_TAX_RATES} (derived default {DEFAULT_TAX_RATE})",
        patterns=_compile(
            rf"(?:{_spaced('税率')}|{_spaced('征收率')})[^%]{{0,60}}?(?<![\d.])(?P<value>\d{{1,2}}(?:\.\d+)?)\s*%",
            r"\b(?:tax|vat)\s*rate\s*:?\s*(?P<value>\d{1,2}(?:\.\d+)?)\s*%",
            rf"(?:{_spaced('税率')}|{_spaced('征收率')})[^%]{{0,60}}?(?P<value>免\s*税)",
        ),
        check=check_tax_rate,
    ),
    FieldKind.AMOUNT_IN_WORDS: FieldSpec(
        kind=FieldKind.AMOUNT_IN_WORDS,
        description="Total amount written in formal Chinese numerals",
        patterns=_compile(
            rf"大\s*写\s*\)?\s*:?\s*[ⓧ⊗Ⓧ×]?\s*(?P<value>{_NUMERAL}(?:\s?{_NUMERAL})+)",
            rf"[ⓧ⊗Ⓧ]\s*(?P<value>{_NUMERAL}(?:\s?{_NUMERAL})+)",
            rf"(?P<value>{_NUMERAL}(?:\s?{_NUMERAL})+)\s*\(\s*小\s*写",
        ),
        check=check_amount_words,
    ),
}


def get_field_descriptions() -> dict[str, str]:
    """Get a mapping of field names to their descriptions."""
    return {kind.value: spec.description for kind, spec in FIELD_SPECS.items()}
