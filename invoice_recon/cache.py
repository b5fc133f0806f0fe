"""
Counterparty tax cache.

Associates company names with tax identifiers across documents. Every
observation of a (company, tax id) pair raises that pair's confidence; a
company's current mapping only changes when a competing pair becomes strictly
more confident than the current one.

One lock serializes every operation. The lock is held for a single call
only, so concurrent document workers contend briefly and never for the
duration of a whole document.
"""

import json
import re
import threading
from collections import Counter
from pathlib import Path
from typing import Optional, Union

from .config import FULL_WIDTH_REPLACEMENTS, logger
from .schemas import CacheEntry, CacheSnapshot


def normalize_company(name: str) -> str:
    """Key used for company lookups: no whitespace, ASCII brackets, casefolded."""
    for full_width, ascii_char in FULL_WIDTH_REPLACEMENTS.items():
        name = name.replace(full_width, ascii_char)
    return re.sub(r"\s+", "", name).casefold()


class CounterpartyTaxCache:
    """
    Thread-safe company <-> tax id store with per-pair confidence counters.

    Example:
        >>> cache = CounterpartyTaxCache()
        >>> cache.associate("Acme Co", "91310000X", count=3)
        '91310000X'
        >>> cache.associate("Acme Co", "91310000Y")
        '91310000X'
        >>> cache.lookup("acme co")
        '91310000X'
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: dict[str, Counter] = {}
        self._by_company: dict[str, str] = {}
        self._by_tax_id: dict[str, str] = {}
        self._display_names: dict[str, str] = {}

    def associate(self, company: str, tax_id: str, count: int = 1) -> str:
        """
        Record an observation of a company using a tax id.

        Args:
            company: Company name as seen on the document
            tax_id: Tax identifier seen next to it
            count: Number of observations to record

        Returns:
            The tax id the company maps to after this observation
        """
        key = normalize_company(company)
        tax_id = tax_id.strip().upper()

        with self._lock:
            counts = self._counts.setdefault(key, Counter())
            counts[tax_id] += count
            self._display_names.setdefault(key, company.strip())

            current = self._by_company.get(key)
            if current is None:
                self._set_mapping(key, tax_id)
            elif current != tax_id and counts[tax_id] > counts[current]:
                logger.info(
                    f"Tax id for '{company}' superseded: {current} -> {tax_id} "
                    f"({counts[current]} vs {counts[tax_id]})"
                )
                self._release_tax_id(key, current)
                self._set_mapping(key, tax_id)
            elif current == tax_id:
                self._claim_tax_id(key, tax_id)

            return self._by_company[key]

    def _set_mapping(self, key: str, tax_id: str) -> None:
        self._by_company[key] = tax_id
        self._claim_tax_id(key, tax_id)

    def _claim_tax_id(self, key: str, tax_id: str) -> None:
        # A tax id points back at the company that uses it most
        owner = self._by_tax_id.get(tax_id)
        if owner is None or owner == key:
            self._by_tax_id[tax_id] = key
        elif self._counts[key][tax_id] > self._counts[owner][tax_id]:
            self._by_tax_id[tax_id] = key

    def _release_tax_id(self, key: str, tax_id: str) -> None:
        # Hand the tax id to the next company still mapped to it, if any
        if self._by_tax_id.get(tax_id) != key:
            return
        holders = [
            other for other, mapped in self._by_company.items()
            if mapped == tax_id and other != key
        ]
        if holders:
            self._by_tax_id[tax_id] = max(holders, key=lambda other: self._counts[other][tax_id])
        else:
            del self._by_tax_id[tax_id]

    def lookup(self, company: str) -> Optional[str]:
        """Tax id currently associated with a company, if any."""
        with self._lock:
            return self._by_company.get(normalize_company(company))

    def lookup_company(self, tax_id: str) -> Optional[str]:
        """Company name currently associated with a tax id, if any."""
        with self._lock:
            key = self._by_tax_id.get(tax_id.strip().upper())
            return None if key is None else self._display_names[key]

    def confidence(self, company: str, tax_id: str) -> int:
        """Number of observations recorded for a (company, tax id) pair."""
        with self._lock:
            counts = self._counts.get(normalize_company(company))
            return 0 if counts is None else counts[tax_id.strip().upper()]

    def entries(self) -> list[CacheEntry]:
        """All recorded pairs, most confident first within each company."""
        with self._lock:
            return [
                CacheEntry(company=self._display_names[key], tax_id=tax_id, confidence=n)
                for key, counts in self._counts.items()
                for tax_id, n in counts.most_common()
            ]

    def reset(self) -> None:
        """Forget every association."""
        with self._lock:
            self._counts.clear()
            self._by_company.clear()
            self._by_tax_id.clear()
            self._display_names.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_company)

    # ========================================================================
    # Persistence
    # ========================================================================

    def save(self, path: Union[str, Path]) -> None:
        """Write the cache contents to a JSON file."""
        snapshot = CacheSnapshot(entries=self.entries())
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(snapshot.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
        logger.info(f"Saved {len(snapshot.entries)} cache entries to: {path}")

    def restore(self, path: Union[str, Path]) -> int:
        """
        Add the associations of a JSON file written by save().

        Returns:
            Number of entries read; 0 when the file does not exist
        """
        path = Path(path)
        if not path.exists():
            logger.info(f"No cache file at {path}, starting empty")
            return 0

        with open(path, "r", encoding="utf-8") as f:
            snapshot = CacheSnapshot.model_validate(json.load(f))

        # Most confident pairs first, so replay reproduces the saved mappings
        for entry in sorted(snapshot.entries, key=lambda e: -e.confidence):
            self.associate(entry.company, entry.tax_id, count=entry.confidence)

        logger.info(f"Loaded {len(snapshot.entries)} cache entries from: {path}")
        return len(snapshot.entries)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "CounterpartyTaxCache":
        """Build a cache from a JSON file; a missing file yields an empty cache."""
        cache = cls()
        cache.restore(path)
        return cache
