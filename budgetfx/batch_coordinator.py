from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from budgetfx.conversion_cache import (
    CacheKey,
    ConversionCache,
    LookupStatus,
    Source,
    record_source,
)
from budgetfx.conversion_client import ConversionClient, ConversionItem
from budgetfx.currency import coerce_amount, normalize_currency
from budgetfx.records import FinancialRecord
from budgetfx.telemetry import TelemetryReport, TelemetrySink, safe_report

logger = logging.getLogger(__name__)


@dataclass
class Partition:
    same_currency: List[FinancialRecord] = field(default_factory=list)
    resolved: List[FinancialRecord] = field(default_factory=list)
    pending: List[FinancialRecord] = field(default_factory=list)
    to_dispatch: List[FinancialRecord] = field(default_factory=list)


@dataclass(frozen=True)
class BatchOutcome:
    dispatched: int = 0
    resolved: int = 0
    missing: int = 0
    failed: bool = False
    discarded: bool = False


class BatchCoordinator:
    """
    Coalesces the conversions a collection needs into one batched request.

    Partitioning and pending-marking happen without an intervening await, so
    overlapping concurrent calls never dispatch the same key twice. Callers
    that find keys already in flight wait on the batch that owns them.
    """

    def __init__(
        self,
        cache: ConversionCache,
        client: ConversionClient,
        telemetry: Optional[TelemetrySink] = None,
        scenario_id: Optional[str] = None,
    ):
        self._cache = cache
        self._client = client
        self._telemetry = telemetry
        self.scenario_id = scenario_id
        self._inflight: Dict[CacheKey, asyncio.Future] = {}

    @property
    def cache(self) -> ConversionCache:
        return self._cache

    def partition(
        self, records: Iterable[FinancialRecord], target_currency: str
    ) -> Partition:
        target = normalize_currency(target_currency)
        result = Partition()
        seen: set[str] = set()
        for record in records:
            if record.id in seen:
                continue
            seen.add(record.id)
            status = self._cache.get(record, target).status
            if status is LookupStatus.NATIVE:
                result.same_currency.append(record)
            elif status is LookupStatus.RESOLVED:
                result.resolved.append(record)
            elif status is LookupStatus.PENDING:
                result.pending.append(record)
            else:
                result.to_dispatch.append(record)
        return result

    async def ensure_converted(
        self, records: Iterable[FinancialRecord], target_currency: str
    ) -> BatchOutcome:
        target = normalize_currency(target_currency)
        parts = self.partition(records, target)
        waiting = self._inflight_batches(parts.pending, target)

        if not parts.to_dispatch:
            await self._wait_for(waiting)
            return BatchOutcome()

        to_dispatch = parts.to_dispatch
        record_ids = [record.id for record in to_dispatch]
        sources = _sources(to_dispatch)
        self._cache.mark_pending(record_ids, target, sources)
        generation = self._cache.generation
        batch = asyncio.get_running_loop().create_future()
        for record_id in record_ids:
            self._inflight[(record_id, target)] = batch

        try:
            outcome = await self._dispatch(to_dispatch, target, generation)
        finally:
            for record_id in record_ids:
                if self._inflight.get((record_id, target)) is batch:
                    del self._inflight[(record_id, target)]
            if not batch.done():
                batch.set_result(None)

        await self._wait_for(waiting)
        return outcome

    async def _dispatch(
        self, records: List[FinancialRecord], target: str, generation: int
    ) -> BatchOutcome:
        items = [ConversionItem(amount=record.amount, currency=record.currency) for record in records]
        logger.debug(
            "Dispatching batch of %d conversions to %s for %s",
            len(items),
            target,
            self._cache.name,
        )
        try:
            results = await self._client.convert_batch(items, target)
        except asyncio.CancelledError:
            if self._cache.generation == generation:
                self._cache.release(
                    [record.id for record in records], target, _sources(records)
                )
            raise
        except Exception as exc:
            self._report_failure(exc, target, len(items))
            if self._cache.generation == generation:
                self._cache.release(
                    [record.id for record in records], target, _sources(records)
                )
            return BatchOutcome(dispatched=len(items), failed=True)

        if self._cache.generation != generation:
            logger.info(
                "Discarding %d stale conversions to %s for %s after invalidation",
                len(results),
                target,
                self._cache.name,
            )
            return BatchOutcome(dispatched=len(items), discarded=True)

        resolved = 0
        for index, record in enumerate(records):
            amount = results.get(index)
            if amount is None:
                continue
            self._cache.resolve(
                record.id, target, coerce_amount(amount), source=record_source(record)
            )
            resolved += 1

        missing = len(records) - resolved
        if missing:
            logger.debug(
                "Batch to %s for %s omitted %d items; they keep their native amounts",
                target,
                self._cache.name,
                missing,
            )
        return BatchOutcome(dispatched=len(items), resolved=resolved, missing=missing)

    def _inflight_batches(
        self, records: Iterable[FinancialRecord], target: str
    ) -> List[asyncio.Future]:
        batches: List[asyncio.Future] = []
        for record in records:
            batch = self._inflight.get((record.id, target))
            if batch is not None and batch not in batches:
                batches.append(batch)
        return batches

    async def _wait_for(self, batches: List[asyncio.Future]) -> None:
        for batch in batches:
            await asyncio.shield(batch)

    def _report_failure(self, exc: BaseException, target: str, items_count: int) -> None:
        logger.warning(
            "Batch conversion to %s failed for %s: %s", target, self._cache.name, exc
        )
        safe_report(
            self._telemetry,
            TelemetryReport(
                action="convert_batch",
                error=exc,
                context={
                    "target_currency": target,
                    "items_count": items_count,
                    "collection": self._cache.name,
                    "scenario_id": self.scenario_id,
                },
            ),
        )



def _sources(records: Iterable[FinancialRecord]) -> Dict[str, Source]:
    return {record.id: record_source(record) for record in records}
