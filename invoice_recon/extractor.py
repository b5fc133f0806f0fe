"""
Field extraction for converting normalized invoice text to a draft record.

This module provides functionality to:
- Apply each field's ordered pattern candidates to normalized text
- Pick counterparties using label anchors and positional preference
- Pool monetary amounts and assign them by label or by magnitude
- Build a draft DocumentRecord for reconciliation
"""

from decimal import Decimal
from typing import Iterator, NamedTuple, Optional

from .config import TAX_ID_WINDOW, logger
from .fields import (
    FIELD_SPECS,
    ROLE_ANCHORS,
    FieldKind,
    FieldSpec,
    Role,
    parse_amount,
)
from .normalizer import in_first_half, join_sources, normalize_text
from .schemas import DocumentRecord


class FieldMatch(NamedTuple):
    """A validated field value and where it was found."""
    value: str
    offset: int


_NAME_KINDS = {Role.BUYER: FieldKind.BUYER_NAME, Role.SELLER: FieldKind.SELLER_NAME}
_TAX_ID_KINDS = {Role.BUYER: FieldKind.BUYER_TAX_ID, Role.SELLER: FieldKind.SELLER_TAX_ID}

# Record fields filled by extraction, in export order
RECORD_FIELDS: list[str] = [
    "invoice_code",
    "invoice_number",
    "issue_date",
    "buyer_name",
    "buyer_tax_id",
    "seller_name",
    "seller_tax_id",
    "total_amount",
    "total_amount_words",
    "tax_amount",
    "pre_tax_amount",
    "tax_rate",
]


def build_document_text(texts: list[str]) -> str:
    """Join the texts of every acquisition method and normalize the result."""
    return normalize_text(join_sources(texts))


# ============================================================================
# Generic Field Search
# ============================================================================

def iter_field_matches(text: str, spec: FieldSpec) -> Iterator[FieldMatch]:
    """
    Yield every valid match of a field, in pattern order then text order.
    """
    for pattern in spec.patterns:
        for match in pattern.finditer(text):
            value = spec.check(match.group("value"))
            if value:
                yield FieldMatch(value, match.start("value"))


def find_field(text: str, kind: FieldKind) -> Optional[str]:
    """
    Return the first match of a field that passes its check.

    Patterns are tried most specific first; within a pattern, matches are
    tried in text order.
    """
    match = next(iter_field_matches(text, FIELD_SPECS[kind]), None)
    return None if match is None else match.value


def _prefers_position(text: str, offset: int, role: Role) -> bool:
    """Buyers sit in the first half of a document, sellers in the second."""
    return in_first_half(text, offset) == (role is Role.BUYER)


# ============================================================================
# Counterparties
# ============================================================================

def extract_counterparty_name(text: str, role: Role) -> Optional[FieldMatch]:
    """
    Extract the buyer or seller name.

    The first candidate that passes the name check and lies on the role's
    side of the document wins. Generic 名称 anchors are only used with that
    positional support; role-labeled candidates are accepted regardless of
    position as a last resort.
    """
    spec = FIELD_SPECS[_NAME_KINDS[role]]

    for pattern in spec.patterns + spec.fallback_patterns:
        for match in pattern.finditer(text):
            value = spec.check(match.group("value"))
            offset = match.start("value")
            if value and _prefers_position(text, offset, role):
                return FieldMatch(value, offset)

    return next(iter_field_matches(text, spec), None)


def _iter_anchored_tax_ids(text: str, spec: FieldSpec) -> Iterator[FieldMatch]:
    """Tax ids found in the window after each anchor of the spec's role."""
    opposite = ROLE_ANCHORS[Role.SELLER if spec.role is Role.BUYER else Role.BUYER]

    for anchor in spec.anchor.finditer(text):
        start = anchor.end()
        end = min(len(text), start + TAX_ID_WINDOW)
        # The window never runs into the other party's section
        stop = opposite.search(text, start, end)
        if stop:
            end = stop.start()
        for pattern in spec.patterns:
            for match in pattern.finditer(text, start, end):
                value = spec.check(match.group("value"))
                if value:
                    yield FieldMatch(value, match.start("value"))


def extract_counterparty_tax_id(text: str, role: Role) -> Optional[FieldMatch]:
    """
    Extract the buyer or seller tax id.

    Search order:
    1. Tax ids near a role anchor that lie on the role's side of the document
    2. Labeled tax ids anywhere on the role's side of the document
    3. The first tax id near a role anchor, wherever it lies
    """
    spec = FIELD_SPECS[_TAX_ID_KINDS[role]]
    anchored = list(_iter_anchored_tax_ids(text, spec))

    for candidate in anchored:
        if _prefers_position(text, candidate.offset, role):
            return candidate

    for pattern in spec.fallback_patterns:
        for match in pattern.finditer(text):
            value = spec.check(match.group("value"))
            offset = match.start("value")
            if value and _prefers_position(text, offset, role):
                return FieldMatch(value, offset)

    return anchored[0] if anchored else None


def _resolve_shared_value(
    text: str,
    buyer: Optional[FieldMatch],
    seller: Optional[FieldMatch],
) -> tuple[Optional[FieldMatch], Optional[FieldMatch]]:
    """Keep a value shared by both roles only for the role its position favors."""
    if buyer is None or seller is None or buyer.value != seller.value:
        return buyer, seller
    offset = min(buyer.offset, seller.offset)
    logger.debug(f"'{buyer.value}' matched both roles, resolving by position {offset}")
    if in_first_half(text, offset):
        return buyer, None
    return None, seller


# ============================================================================
# Amounts
# ============================================================================

def _distinct_amounts(text: str, kinds: list[FieldKind]) -> list[Decimal]:
    amounts: list[Decimal] = []
    for kind in kinds:
        for match in iter_field_matches(text, FIELD_SPECS[kind]):
            amount = parse_amount(match.value)
            if amount is not None and amount not in amounts:
                amounts.append(amount)
    return amounts


def extract_amounts(text: str) -> tuple[Optional[Decimal], Optional[Decimal], Optional[Decimal]]:
    """
    Extract the pre-tax amount, tax amount and total.

    All labeled candidates are pooled. When exactly three distinct values
    remain they are assigned by magnitude (tax < pre-tax < total) instead of
    by label. Otherwise each label keeps its own first match. Without any
    labeled candidate, unlabeled currency amounts are used under the same
    three-value rule.

    Returns:
        Tuple of (pre_tax_amount, tax_amount, total_amount), any may be None
    """
    labeled_kinds = [FieldKind.TOTAL_AMOUNT, FieldKind.TAX_AMOUNT, FieldKind.PRE_TAX_AMOUNT]
    pool = _distinct_amounts(text, labeled_kinds)

    if not pool:
        pool = _distinct_amounts(text, [FieldKind.UNLABELED_AMOUNT])
        if len(pool) == 3:
            tax, pre_tax, total = sorted(pool)
            return pre_tax, tax, total
        return None, None, None

    if len(pool) == 3:
        tax, pre_tax, total = sorted(pool)
        return pre_tax, tax, total

    pre_tax = parse_amount(find_field(text, FieldKind.PRE_TAX_AMOUNT))
    tax = parse_amount(find_field(text, FieldKind.TAX_AMOUNT))
    total = parse_amount(find_field(text, FieldKind.TOTAL_AMOUNT))
    return pre_tax, tax, total


def extract_tax_rate(text: str) -> Optional[int]:
    """Tax rate snapped to a valid VAT rate, or None."""
    value = find_field(text, FieldKind.TAX_RATE)
    return None if value is None else int(value)


# ============================================================================
# Main Extraction Function
# ============================================================================

def extract_document(text: str, file_id: str) -> DocumentRecord:
    """
    Build a draft record from normalized document text.

    Args:
        text: Normalized text (see build_document_text)
        file_id: Identifier of the source document

    Returns:
        DocumentRecord with every recognized field set; the rest stay None
    """
    record = DocumentRecord(file_id=file_id, raw_text=text)

    record.invoice_code = find_field(text, FieldKind.INVOICE_CODE)
    record.invoice_number = find_field(text, FieldKind.INVOICE_NUMBER)
    record.issue_date = find_field(text, FieldKind.ISSUE_DATE)

    buyer_name, seller_name = _resolve_shared_value(
        text,
        extract_counterparty_name(text, Role.BUYER),
        extract_counterparty_name(text, Role.SELLER),
    )
    buyer_tax_id, seller_tax_id = _resolve_shared_value(
        text,
        extract_counterparty_tax_id(text, Role.BUYER),
        extract_counterparty_tax_id(text, Role.SELLER),
    )
    record.buyer_name = buyer_name.value if buyer_name else None
    record.seller_name = seller_name.value if seller_name else None
    record.buyer_tax_id = buyer_tax_id.value if buyer_tax_id else None
    record.seller_tax_id = seller_tax_id.value if seller_tax_id else None

    record.pre_tax_amount, record.tax_amount, record.total_amount = extract_amounts(text)
    record.tax_rate = extract_tax_rate(text)
    record.total_amount_words = find_field(text, FieldKind.AMOUNT_IN_WORDS)

    missing = [name for name in RECORD_FIELDS if getattr(record, name) is None]
    logger.info(
        f"Extracted {len(RECORD_FIELDS) - len(missing)}/{len(RECORD_FIELDS)} fields from: {file_id}"
    )
    if missing:
        logger.debug(f"Unrecognized in {file_id}: {', '.join(missing)}")
    return record

