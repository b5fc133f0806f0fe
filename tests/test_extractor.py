"""
Tests for the field extractor module.

These tests verify per-field extraction from normalized invoice text and the
assembly of draft records.
"""

from decimal import Decimal

import pytest

from invoice_recon.extractor import (
    RECORD_FIELDS,
    build_document_text,
    extract_amounts,
    extract_counterparty_name,
    extract_counterparty_tax_id,
    extract_document,
    extract_tax_rate,
    find_field,
)
from invoice_recon.fields import FieldKind, Role

from conftest import BUYER, BUYER_TAX_ID, SELLER, SELLER_TAX_ID


@pytest.fixture
def normalized(sample_text) -> str:
    return build_document_text([sample_text])


class TestIdentifiers:
    """Tests for invoice code, number and date extraction."""

    def test_invoice_code(self, normalized):
        assert find_field(normalized, FieldKind.INVOICE_CODE) == "011001900111"

    def test_invoice_number(self, normalized):
        assert find_field(normalized, FieldKind.INVOICE_NUMBER) == "12345678"

    def test_issue_date(self, normalized):
        assert find_field(normalized, FieldKind.ISSUE_DATE) == "2024年03月15日"

    def test_missing_field_is_none(self):
        assert find_field("no identifiers here", FieldKind.INVOICE_CODE) is None


class TestCounterparties:
    """Tests for buyer/seller name and tax id extraction."""

    def test_buyer_name(self, normalized):
        match = extract_counterparty_name(normalized, Role.BUYER)
        assert match.value == BUYER

    def test_seller_name(self, normalized):
        match = extract_counterparty_name(normalized, Role.SELLER)
        assert match.value == SELLER

    def test_buyer_tax_id(self, normalized):
        match = extract_counterparty_tax_id(normalized, Role.BUYER)
        assert match.value == BUYER_TAX_ID

    def test_seller_tax_id(self, normalized):
        match = extract_counterparty_tax_id(normalized, Role.SELLER)
        assert match.value == SELLER_TAX_ID

    def test_missing_seller_tax_id_not_taken_from_buyer(self, invoice_text):
        text = build_document_text([invoice_text(seller_tax_id=None)])
        assert extract_counterparty_tax_id(text, Role.SELLER) is None
        assert extract_counterparty_tax_id(text, Role.BUYER).value == BUYER_TAX_ID

    def test_shared_tax_id_assigned_to_one_role(self, invoice_text):
        text = invoice_text(seller_tax_id=BUYER_TAX_ID)
        record = extract_document(build_document_text([text]), "shared.txt")
        assert record.buyer_tax_id == BUYER_TAX_ID
        assert record.seller_tax_id is None

    def test_duplicate_sources_extract_same_fields(self, sample_text):
        text = build_document_text([sample_text, sample_text])
        record = extract_document(text, "twice.pdf")
        assert record.buyer_name == BUYER
        assert record.seller_name == SELLER
        assert record.buyer_tax_id == BUYER_TAX_ID
        assert record.seller_tax_id == SELLER_TAX_ID


class TestAmounts:
    """Tests for amount pooling and assignment."""

    def test_labeled_amounts(self, normalized):
        pre_tax, tax, total = extract_amounts(normalized)
        assert pre_tax == Decimal("100.00")
        assert tax == Decimal("6.00")
        assert total == Decimal("106.00")

    def test_unlabeled_amounts_assigned_by_magnitude(self):
        text = build_document_text(["收款 ¥100.00 ¥6.00 ¥106.00"])
        pre_tax, tax, total = extract_amounts(text)
        assert tax == Decimal("6.00")
        assert pre_tax == Decimal("100.00")
        assert total == Decimal("106.00")

    def test_unlabeled_amounts_need_three_values(self):
        text = build_document_text(["收款 ¥100.00 ¥6.00"])
        assert extract_amounts(text) == (None, None, None)

    def test_single_labeled_total(self):
        text = build_document_text(["价税合计（小写） ¥106.00"])
        assert extract_amounts(text) == (None, None, Decimal("106.00"))

    def test_tax_rate(self, normalized):
        assert extract_tax_rate(normalized) == 6

    def test_tax_exempt_rate(self):
        text = build_document_text(["税率 免税"])
        assert extract_tax_rate(text) == 0

    def test_amount_in_words(self, normalized):
        assert find_field(normalized, FieldKind.AMOUNT_IN_WORDS) == "壹佰零陆圆整"


class TestExtractDocument:
    """Tests for assembling a draft record."""

    def test_complete_record(self, normalized):
        record = extract_document(normalized, "invoice_001.pdf")
        assert record.file_id == "invoice_001.pdf"
        assert record.invoice_code == "011001900111"
        assert record.invoice_number == "12345678"
        assert record.issue_date == "2024年03月15日"
        assert record.buyer_name == BUYER
        assert record.seller_name == SELLER
        assert record.total_amount == Decimal("106.00")
        assert record.tax_amount == Decimal("6.00")
        assert record.pre_tax_amount == Decimal("100.00")
        assert record.tax_rate == 6
        assert record.total_amount_words == "壹佰零陆圆整"
        assert record.raw_text == normalized
        assert record.notes == []

    def test_unrecognized_fields_are_none(self):
        record = extract_document("nothing useful", "empty.txt")
        for name in RECORD_FIELDS:
            assert getattr(record, name) is None
