"""
Tests for conversion between amounts and Chinese numerals.
"""

from decimal import Decimal

import pytest

from invoice_recon.numerals import from_words, to_words


class TestToWords:
    """Tests for to_words."""

    @pytest.mark.parametrize("amount,expected", [
        ("106.00", "壹佰零陆圆整"),
        ("0", "零圆整"),
        ("0.05", "伍分"),
        ("0.10", "壹角整"),
        ("1.05", "壹圆零伍分"),
        ("10.50", "壹拾圆伍角整"),
        ("101.01", "壹佰零壹圆零壹分"),
        ("1005.50", "壹仟零伍圆伍角整"),
        ("10010", "壹万零壹拾圆整"),
        ("100000", "壹拾万圆整"),
        ("100000000", "壹亿圆整"),
        ("123456789.12", "壹亿贰仟叁佰肆拾伍万陆仟柒佰捌拾玖圆壹角贰分"),
    ])
    def test_known_amounts(self, amount, expected):
        assert to_words(Decimal(amount)) == expected

    def test_rounds_to_fen(self):
        assert to_words(Decimal("1.005")) == to_words(Decimal("1.01"))

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            to_words(Decimal("-1.00"))

    def test_too_large_rejected(self):
        with pytest.raises(ValueError):
            to_words(Decimal(10) ** 16)


class TestFromWords:
    """Tests for from_words."""

    @pytest.mark.parametrize("words,expected", [
        ("壹佰零陆圆整", "106.00"),
        ("壹佰零陆元整", "106.00"),
        ("壹佰零陆元正", "106.00"),
        ("叁角伍分", "0.35"),
        ("壹万零壹拾元整", "10010.00"),
        ("壹 佰 零 陆 圆 整", "106.00"),
        ("拾圆整", "10.00"),
    ])
    def test_known_words(self, words, expected):
        assert from_words(words) == Decimal(expected)

    @pytest.mark.parametrize("words", [None, "", "   ", "整", "abc", "壹佰零陆圆整abc"])
    def test_unparsable(self, words):
        assert from_words(words) is None

    @pytest.mark.parametrize("words", ["伍角陆", "壹佰圆伍", "壹圆伍角陆", "伍角陆整", "叁角伍分陆"])
    def test_digit_without_unit_after_fraction_rejected(self, words):
        assert from_words(words) is None

    def test_trailing_zero_digit_accepted(self):
        assert from_words("壹圆伍角零") == Decimal("1.50")


class TestRoundTrip:
    """Canonical words survive a parse and re-render."""

    @pytest.mark.parametrize("amount", [
        "0.01", "0.10", "1.00", "10.50", "101.01", "1005.50",
        "10000.00", "1000000.00", "100000000.00", "123456789.12", "9999999999.99",
    ])
    def test_to_words_from_words(self, amount):
        words = to_words(Decimal(amount))
        assert from_words(words) == Decimal(amount)
        assert to_words(from_words(words)) == words
