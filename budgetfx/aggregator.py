from __future__ import annotations

import hashlib
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from budgetfx.conversion_cache import ConversionCache
from budgetfx.currency import ZERO, normalize_currency
from budgetfx.frequency import normalize
from budgetfx.goal_schedule import GoalSchedule
from budgetfx.records import FinancialRecord, Saving

UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class AggregateTotals:
    monthly: Decimal = ZERO
    annual: Decimal = ZERO
    lifetime: Decimal = ZERO


@dataclass(frozen=True)
class GoalTotals:
    total_target: Decimal = ZERO
    total_saved: Decimal = ZERO
    total_monthly_payment: Decimal = ZERO
    goals_total: int = 0


@dataclass(frozen=True)
class FinancialSummary:
    currency: str
    income: AggregateTotals
    expenses: AggregateTotals
    savings_total: Decimal
    goals: GoalTotals
    remainder: Decimal


def collection_totals(
    records: Iterable[FinancialRecord],
    target_currency: str,
    cache: ConversionCache,
) -> AggregateTotals:
    target = normalize_currency(target_currency)
    monthly = ZERO
    annual = ZERO
    lifetime = ZERO
    for record in records:
        amount = cache.resolved_amount(record, target)
        normalized = normalize(amount, record.frequency)
        monthly += normalized.monthly
        annual += normalized.annual
        lifetime += normalized.lifetime
    return AggregateTotals(monthly=monthly, annual=annual, lifetime=lifetime)


def savings_total(
    savings: Iterable[Saving],
    target_currency: str,
    cache: ConversionCache,
) -> Decimal:
    target = normalize_currency(target_currency)
    total = ZERO
    for saving in savings:
        total += cache.resolved_amount(saving.as_record(), target)
    return total


def goal_totals(schedules: Iterable[GoalSchedule]) -> GoalTotals:
    total_target = ZERO
    total_saved = ZERO
    total_monthly_payment = ZERO
    count = 0
    for schedule in schedules:
        count += 1
        total_target += schedule.target_amount_converted
        total_saved += schedule.saved_amount_converted
        if schedule.monthly_payment_converted is not None:
            total_monthly_payment += schedule.monthly_payment_converted
    return GoalTotals(
        total_target=total_target,
        total_saved=total_saved,
        total_monthly_payment=total_monthly_payment,
        goals_total=count,
    )


def category_breakdown(
    records: Iterable[FinancialRecord],
    target_currency: str,
    cache: ConversionCache,
) -> Dict[str, Decimal]:
    target = normalize_currency(target_currency)
    grouped: Dict[str, Decimal] = {}
    for record in records:
        label = record.category or UNCATEGORIZED
        amount = cache.resolved_amount(record, target)
        grouped[label] = grouped.get(label, ZERO) + normalize(amount, record.frequency).monthly
    return grouped


def remainder(income: AggregateTotals, expenses: AggregateTotals, goals: GoalTotals) -> Decimal:
    return income.monthly - expenses.monthly - goals.total_monthly_payment


def financial_summary(
    currency: str,
    income: AggregateTotals,
    expenses: AggregateTotals,
    savings: Decimal,
    goals: GoalTotals,
) -> FinancialSummary:
    return FinancialSummary(
        currency=normalize_currency(currency),
        income=income,
        expenses=expenses,
        savings_total=savings,
        goals=goals,
        remainder=remainder(income, expenses, goals),
    )


def records_content_hash(records: Sequence[FinancialRecord]) -> str:
    parts = sorted(
        f"{record.id}:{record.amount}:{record.currency}:{record.frequency.value}:{record.category or ''}"
        for record in records
    )
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


class TotalsMemo:
    """Remembers the last totals per collection while inputs and cache are unchanged."""

    def __init__(self, cache: ConversionCache):
        self._cache = cache
        self._key: Optional[Tuple[str, str, int, int]] = None
        self._totals: Optional[AggregateTotals] = None
        self.hits = 0

    def totals(self, records: Sequence[FinancialRecord], target_currency: str) -> AggregateTotals:
        target = normalize_currency(target_currency)
        key = (
            records_content_hash(records),
            target,
            self._cache.generation,
            self._cache.version,
        )
        if key == self._key and self._totals is not None:
            self.hits += 1
            return self._totals
        self._totals = collection_totals(records, target, self._cache)
        self._key = key
        return self._totals

    def clear(self) -> None:
        self._key = None
        self._totals = None


def monthly_breakdown_items(breakdown: Dict[str, Decimal]) -> List[Tuple[str, Decimal]]:
    return sorted(breakdown.items(), key=lambda item: (-item[1], item[0]))
