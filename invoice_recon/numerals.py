"""
Conversion between amounts and formal Chinese numerals (大写金额).

This module provides:
- to_words: Decimal -> canonical numeral string (e.g. 壹佰零陆圆整)
- from_words: numeral string -> Decimal, tolerant of 元/圆 and 整/正
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional


DIGITS = "零壹贰叁肆伍陆柒捌玖"
_DIGIT_VALUES = {ch: i for i, ch in enumerate(DIGITS)}
_DIGIT_VALUES["两"] = 2

# Units inside a four-digit group, from the left
_SECTION_UNITS = ("仟", "佰", "拾", "")
_SECTION_VALUES = {"拾": 10, "佰": 100, "仟": 1000}

# Units appended to each four-digit group, from the right
_GROUP_UNITS = ("", "万", "亿", "万亿")

_YUAN = "圆"
_WHOLE = "整"

_ALLOWED = set(DIGITS) | set(_SECTION_VALUES) | set("两万亿元圆角分整正")

CENT = Decimal("0.01")
MAX_AMOUNT = Decimal(10) ** 16


def _group_words(group: int) -> str:
    """Words for 1..9999, with interior zero runs collapsed to one 零."""
    words = ""
    pending_zero = False
    for position, unit in enumerate(_SECTION_UNITS):
        digit = (group // 10 ** (3 - position)) % 10
        if digit == 0:
            pending_zero = bool(words)
            continue
        if pending_zero:
            words += DIGITS[0]
        words += DIGITS[digit] + unit
        pending_zero = False
    return words


def _integer_words(value: int) -> str:
    groups = []
    while value:
        groups.append(value % 10000)
        value //= 10000

    parts: list[str] = []
    pending_zero = False
    for idx in range(len(groups) - 1, -1, -1):
        group = groups[idx]
        if group == 0:
            pending_zero = bool(parts)
            continue
        # A gap before this group (a zero group, or leading zeros in it) reads as 零
        if parts and (pending_zero or group < 1000):
            parts.append(DIGITS[0])
        parts.append(_group_words(group) + _GROUP_UNITS[idx])
        pending_zero = False
    return "".join(parts)


def to_words(amount: Decimal) -> str:
    """
    Convert a non-negative amount to its canonical written form.

    The amount is rounded to the fen. Amounts without a fractional part end
    with 整, as do amounts that stop at 角.

    Args:
        amount: Amount in yuan

    Returns:
        Numeral string such as 壹仟零伍圆伍角整

    Raises:
        ValueError: If the amount is negative or too large to write out
    """
    try:
        amount = Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise ValueError(f"Not a valid amount: {amount!r}") from e
    if amount < 0:
        raise ValueError(f"Cannot write a negative amount in words: {amount}")
    if amount >= MAX_AMOUNT:
        raise ValueError(f"Amount too large to write in words: {amount}")

    cents = int(amount * 100)
    integer, fraction = divmod(cents, 100)
    jiao, fen = divmod(fraction, 10)

    if integer == 0 and fraction == 0:
        return DIGITS[0] + _YUAN + _WHOLE

    parts = []
    if integer:
        parts.append(_integer_words(integer) + _YUAN)

    if fraction == 0:
        parts.append(_WHOLE)
        return "".join(parts)

    if jiao:
        parts.append(DIGITS[jiao] + "角")
    elif integer:
        parts.append(DIGITS[0])

    if fen:
        parts.append(DIGITS[fen] + "分")
    else:
        parts.append(_WHOLE)

    return "".join(parts)


def from_words(text: Optional[str]) -> Optional[Decimal]:
    """
    Parse a written amount back to a Decimal.

    Digit values are multiplied into 拾/佰/仟 and the running sub-total is
    flushed at each 万 and 亿 boundary. Whitespace is ignored.

    Returns:
        The amount, or None if the text is empty or contains anything other
        than numeral and unit characters
    """
    if not text:
        return None
    text = re.sub(r"\s+", "", text)
    if not text or any(ch not in _ALLOWED for ch in text):
        return None
    if not any(ch in _DIGIT_VALUES or ch in _SECTION_VALUES for ch in text):
        return None

    result = 0      # everything flushed at 亿
    wan = 0         # everything flushed at 万
    section = 0     # current four-digit group
    number = 0      # digit waiting for its unit
    integer = None
    jiao = fen = 0
    fraction_seen = False

    for ch in text:
        if ch in _DIGIT_VALUES:
            number = _DIGIT_VALUES[ch]
        elif ch in _SECTION_VALUES:
            section += (number or 1) * _SECTION_VALUES[ch]
            number = 0
        elif ch == "万":
            wan += (section + number) * 10000
            section = number = 0
        elif ch == "亿":
            result += (wan + section + number) * 10 ** 8
            wan = section = number = 0
        elif ch in "元圆":
            integer = result + wan + section + number
            result = wan = section = number = 0
        elif ch == "角":
            jiao = number
            number = 0
            fraction_seen = True
        elif ch == "分":
            fen = number
            number = 0
            fraction_seen = True
        elif ch in "整正":
            break

    # A digit left without its unit after 圆 or 角 is a truncated fraction
    if number and (integer is not None or fraction_seen):
        return None

    if integer is None:
        integer = result + wan + section + number

    amount = Decimal(integer) + Decimal(jiao) / 10 + Decimal(fen) / 100
    return amount.quantize(CENT)
