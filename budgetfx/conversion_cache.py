from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Tuple

from budgetfx.currency import normalize_currency
from budgetfx.records import FinancialRecord

CacheKey = Tuple[str, str]
Source = Tuple[Decimal, str]


class EntryState(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class LookupStatus(str, Enum):
    NATIVE = "native"
    RESOLVED = "resolved"
    PENDING = "pending"
    MISSING = "missing"


def record_source(record: FinancialRecord) -> Source:
    return (record.amount, record.currency)


@dataclass(frozen=True)
class CacheEntry:
    state: EntryState
    amount: Optional[Decimal] = None
    source: Optional[Source] = None

    def matches(self, source: Optional[Source]) -> bool:
        # entries seeded without a source accept any record
        return self.source is None or source is None or self.source == source


@dataclass(frozen=True)
class CacheLookup:
    status: LookupStatus
    amount: Optional[Decimal] = None

    @property
    def is_settled(self) -> bool:
        return self.status in (LookupStatus.NATIVE, LookupStatus.RESOLVED)


class ConversionCache:
    """
    Converted amounts for one collection, keyed by (record id, target currency).

    Entries only exist for records whose currency differs from the target.
    Each entry remembers the amount and currency it was converted from; a
    record edited since then reads as missing and is converted again.
    invalidate_all() starts a new generation instead of patching entries.
    """

    def __init__(self, name: str = "collection"):
        self.name = name
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._generation = 0
        self._version = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, record: FinancialRecord, target_currency: str) -> CacheLookup:
        target = normalize_currency(target_currency)
        if record.currency == target:
            return CacheLookup(LookupStatus.NATIVE, record.amount)
        return self.lookup(record.id, target, source=record_source(record))

    def lookup(
        self, record_id: str, target_currency: str, source: Optional[Source] = None
    ) -> CacheLookup:
        entry = self._entries.get((record_id, target_currency))
        if entry is None or not entry.matches(source):
            return CacheLookup(LookupStatus.MISSING)
        if entry.state is EntryState.RESOLVED:
            return CacheLookup(LookupStatus.RESOLVED, entry.amount)
        return CacheLookup(LookupStatus.PENDING)

    def resolved_amount(self, record: FinancialRecord, target_currency: str) -> Decimal:
        """Display amount for a record: converted when resolved, native otherwise."""
        result = self.get(record, target_currency)
        if result.amount is not None:
            return result.amount
        return record.amount

    def mark_pending(
        self,
        record_ids: Iterable[str],
        target_currency: str,
        sources: Optional[Mapping[str, Source]] = None,
    ) -> list[str]:
        """Mark keys as in flight; returns the ids that were newly marked.

        An entry left over from an earlier amount or currency of the same
        record is replaced.
        """
        target = normalize_currency(target_currency)
        marked: list[str] = []
        for record_id in record_ids:
            key = (record_id, target)
            source = sources.get(record_id) if sources else None
            existing = self._entries.get(key)
            if existing is not None and existing.matches(source):
                continue
            self._entries[key] = CacheEntry(EntryState.PENDING, source=source)
            marked.append(record_id)
        if marked:
            self._version += 1
        return marked

    def resolve(
        self,
        record_id: str,
        target_currency: str,
        amount: Decimal,
        source: Optional[Source] = None,
    ) -> None:
        key = (record_id, normalize_currency(target_currency))
        existing = self._entries.get(key)
        if existing is not None:
            # a newer edit of the record owns the key
            if not existing.matches(source):
                return
            if existing.state is EntryState.RESOLVED:
                return
            if source is None:
                source = existing.source
        self._entries[key] = CacheEntry(EntryState.RESOLVED, amount, source)
        self._version += 1

    def release(
        self,
        record_ids: Iterable[str],
        target_currency: str,
        sources: Optional[Mapping[str, Source]] = None,
    ) -> None:
        """Drop pending marks for a failed batch so the keys read as missing again."""
        target = normalize_currency(target_currency)
        released = False
        for record_id in record_ids:
            key = (record_id, target)
            entry = self._entries.get(key)
            source = sources.get(record_id) if sources else None
            if entry is not None and entry.state is EntryState.PENDING and entry.matches(source):
                del self._entries[key]
                released = True
        if released:
            self._version += 1

    def invalidate_all(self) -> None:
        self._entries = {}
        self._generation += 1
        self._version += 1
