"""
Reconciliation of extracted invoice fields.

This module turns a draft record into a self-consistent one:
- Counterparty tax ids and names are backfilled from the tax cache
- Buyer and seller never keep the same name or tax id
- Total, tax, pre-tax and rate are made arithmetically consistent
- The amount in words is cross-checked against the numeric total

Every fill or overwrite leaves a note on the record (e.g.
'reconciled:total_overwritten'); inconsistencies that survive all steps are
logged as warnings and noted as 'anomaly:...', never raised.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from .cache import CounterpartyTaxCache, normalize_company
from .config import (
    AMOUNT_TOLERANCE,
    DEFAULT_TAX_RATE,
    WORDS_TOLERANCE,
    NoteCategory,
    logger,
)
from .fields import Role, snap_tax_rate
from .normalizer import in_first_half
from .numerals import from_words, to_words
from .schemas import DocumentRecord


CENT = Decimal("0.01")
HUNDRED = Decimal(100)


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _known(amount: Optional[Decimal]) -> bool:
    """An amount takes part in reconciliation only when present and positive."""
    return amount is not None and amount > 0


def _note(category: NoteCategory, code: str) -> str:
    return f"{category.value}:{code}"


def derive_tax_rate(tax: Decimal, pre_tax: Decimal) -> int:
    """Rate implied by tax / pre-tax, snapped to a valid rate (default 6%)."""
    if not _known(pre_tax):
        return DEFAULT_TAX_RATE
    raw = tax / pre_tax * HUNDRED
    return snap_tax_rate(raw, default=DEFAULT_TAX_RATE)


# ============================================================================
# Amounts
# ============================================================================

def reconcile_amounts(record: DocumentRecord) -> DocumentRecord:
    """
    Make total, tax, pre-tax and rate consistent, in place.

    Steps, each acting only when its preconditions hold:
    1. All three amounts known: sort them so tax < pre-tax < total
    2. Total and rate known: derive pre-tax and tax, fill the missing ones
    3. Else pre-tax and rate known: derive tax and total, fill the missing ones
    4. Else pre-tax and tax known: total = pre-tax + tax (overwrite when off by
       more than the tolerance), derive a missing rate.
       Else total with pre-tax or tax: derive the third amount and the rate
    5. All three known: recompute total from pre-tax + tax, re-verify order

    Zero amounts count as absent.
    """
    pre_tax = record.pre_tax_amount
    tax = record.tax_amount
    total = record.total_amount
    rate = record.tax_rate
    rate_derived = False

    if any(a is not None and a == 0 for a in (pre_tax, tax, total)):
        record.add_note(_note(NoteCategory.RECONCILED, "zero_treated_as_absent"))

    # Step 1
    if _known(pre_tax) and _known(tax) and _known(total):
        ordered = sorted([tax, pre_tax, total])
        if ordered != [tax, pre_tax, total]:
            record.add_note(_note(NoteCategory.RECONCILED, "amounts_reordered"))
        tax, pre_tax, total = ordered

    # Steps 2-4
    if _known(total) and rate is not None:
        derived_pre_tax = _money(total / (1 + Decimal(rate) / HUNDRED))
        derived_tax = total - derived_pre_tax
        if not _known(pre_tax):
            pre_tax = derived_pre_tax
            record.add_note(_note(NoteCategory.RECONCILED, "pre_tax_derived"))
        if not _known(tax):
            tax = derived_tax
            record.add_note(_note(NoteCategory.RECONCILED, "tax_derived"))

    elif _known(pre_tax) and rate is not None:
        derived_tax = _money(pre_tax * Decimal(rate) / HUNDRED)
        derived_total = pre_tax + derived_tax
        if not _known(tax):
            tax = derived_tax
            record.add_note(_note(NoteCategory.RECONCILED, "tax_derived"))
        if not _known(total):
            total = derived_total
            record.add_note(_note(NoteCategory.RECONCILED, "total_derived"))

    elif _known(pre_tax) and _known(tax):
        computed = pre_tax + tax
        if not _known(total):
            total = computed
            record.add_note(_note(NoteCategory.RECONCILED, "total_derived"))
        elif abs(computed - total) > AMOUNT_TOLERANCE:
            total = computed
            record.add_note(_note(NoteCategory.RECONCILED, "total_overwritten"))
        rate = derive_tax_rate(tax, pre_tax)
        rate_derived = True

    elif _known(total) and _known(pre_tax) and total > pre_tax:
        tax = total - pre_tax
        record.add_note(_note(NoteCategory.RECONCILED, "tax_derived"))
        rate = derive_tax_rate(tax, pre_tax)
        rate_derived = True

    elif _known(total) and _known(tax) and total > tax:
        pre_tax = total - tax
        record.add_note(_note(NoteCategory.RECONCILED, "pre_tax_derived"))
        rate = derive_tax_rate(tax, pre_tax)
        rate_derived = True

    # Step 5
    if _known(pre_tax) and _known(tax) and _known(total):
        computed = pre_tax + tax
        if abs(computed - total) > AMOUNT_TOLERANCE:
            total = computed
            record.add_note(_note(NoteCategory.RECONCILED, "total_overwritten"))
        if not (tax < pre_tax < total):
            tax, pre_tax, total = sorted([tax, pre_tax, total])
            record.add_note(_note(NoteCategory.RECONCILED, "amounts_reordered"))
            if rate_derived:
                rate = derive_tax_rate(tax, pre_tax)
        if not (tax < pre_tax < total):
            logger.warning(
                f"{record.file_id}: amounts out of order after reconciliation "
                f"(tax={tax}, pre_tax={pre_tax}, total={total})"
            )
            record.add_note(_note(NoteCategory.ANOMALY, "amount_order"))

    if rate_derived and record.tax_rate is None:
        record.add_note(_note(NoteCategory.RECONCILED, "rate_derived"))

    record.pre_tax_amount = None if pre_tax is None else _money(pre_tax)
    record.tax_amount = None if tax is None else _money(tax)
    record.total_amount = None if total is None else _money(total)
    record.tax_rate = rate
    return record


# ============================================================================
# Amount In Words
# ============================================================================

def backfill_total_from_words(record: DocumentRecord) -> DocumentRecord:
    """Use the amount in words when no numeric total was recognized."""
    if _known(record.total_amount) or not record.total_amount_words:
        return record
    amount = from_words(record.total_amount_words)
    if _known(amount):
        record.total_amount = amount
        record.add_note(_note(NoteCategory.RECONCILED, "total_from_words"))
    return record


def reconcile_amount_words(record: DocumentRecord) -> DocumentRecord:
    """
    Cross-check the amount in words against the numeric total.

    The numeric total wins: missing or disagreeing words (by more than one
    cent) are rewritten from it.
    """
    total = record.total_amount
    if not _known(total):
        return record

    expected = to_words(total)
    if record.total_amount_words is None:
        record.total_amount_words = expected
        record.add_note(_note(NoteCategory.RECONCILED, "words_derived"))
        return record

    parsed = from_words(record.total_amount_words)
    if parsed is None or abs(parsed - total) > WORDS_TOLERANCE:
        logger.debug(
            f"{record.file_id}: words '{record.total_amount_words}' ({parsed}) "
            f"disagree with total {total}"
        )
        record.total_amount_words = expected
        record.add_note(_note(NoteCategory.RECONCILED, "words_overwritten"))
    return record


# ============================================================================
# Counterparties
# ============================================================================

def _role_fields(role: Role) -> tuple[str, str]:
    return f"{role.value}_name", f"{role.value}_tax_id"


def observed_pairs(record: DocumentRecord) -> list[tuple[str, str]]:
    """(name, tax id) pairs fully present on the record."""
    pairs = []
    for role in Role:
        name_field, tax_id_field = _role_fields(role)
        name, tax_id = getattr(record, name_field), getattr(record, tax_id_field)
        if name and tax_id:
            pairs.append((name, tax_id))
    return pairs


def backfill_counterparties(record: DocumentRecord, cache: CounterpartyTaxCache) -> DocumentRecord:
    """Fill a missing tax id by name, or a missing name by tax id, from the cache."""
    for role in Role:
        name_field, tax_id_field = _role_fields(role)
        name, tax_id = getattr(record, name_field), getattr(record, tax_id_field)

        if name and not tax_id:
            cached = cache.lookup(name)
            if cached:
                setattr(record, tax_id_field, cached)
                record.add_note(_note(NoteCategory.BACKFILL, tax_id_field))
        elif tax_id and not name:
            cached = cache.lookup_company(tax_id)
            if cached:
                setattr(record, name_field, cached)
                record.add_note(_note(NoteCategory.BACKFILL, name_field))
    return record


def resolve_role_conflicts(record: DocumentRecord) -> DocumentRecord:
    """
    Keep a name or tax id shared by buyer and seller for one role only.

    The role is chosen by where the value first occurs in the document text:
    first half for the buyer, second half for the seller.
    """
    for suffix, key in (("name", normalize_company), ("tax_id", str.upper)):
        buyer_field, seller_field = f"buyer_{suffix}", f"seller_{suffix}"
        buyer, seller = getattr(record, buyer_field), getattr(record, seller_field)
        if not buyer or not seller or key(buyer) != key(seller):
            continue

        offset = record.raw_text.find(buyer)
        if offset < 0 or in_first_half(record.raw_text, offset):
            setattr(record, seller_field, None)
        else:
            setattr(record, buyer_field, None)
        logger.warning(f"{record.file_id}: buyer and seller share {suffix} '{buyer}'")
        record.add_note(_note(NoteCategory.ANOMALY, f"shared_{suffix}"))
    return record


# ============================================================================
# Document Reconciliation
# ============================================================================

def reconcile_document(record: DocumentRecord, cache: CounterpartyTaxCache) -> DocumentRecord:
    """
    Run every reconciliation step on a draft record and learn from it.

    Only pairs seen on the document itself are fed back to the cache, so a
    backfilled tax id never raises its own confidence.

    Args:
        record: Draft record from extract_document
        cache: Shared counterparty tax cache

    Returns:
        The same record, reconciled in place
    """
    resolve_role_conflicts(record)
    observed = observed_pairs(record)

    backfill_counterparties(record, cache)
    resolve_role_conflicts(record)

    backfill_total_from_words(record)
    reconcile_amounts(record)
    reconcile_amount_words(record)

    for name, tax_id in observed:
        cache.associate(name, tax_id)

    logger.debug(f"Reconciled {record.file_id}: {record.notes or 'no changes'}")
    return record
