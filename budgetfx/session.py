"""Per-scenario wiring of caches, coordinators and the display currency."""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from budgetfx.aggregator import (
    AggregateTotals,
    FinancialSummary,
    TotalsMemo,
    category_breakdown,
    financial_summary,
    goal_totals,
    savings_total,
)
from budgetfx.batch_coordinator import BatchCoordinator, BatchOutcome
from budgetfx.conversion_cache import ConversionCache
from budgetfx.conversion_client import ConversionClient
from budgetfx.display_currency import DisplayCurrencyContext
from budgetfx.goal_schedule import GoalSchedule, compute_goal_schedules
from budgetfx.records import (
    FinancialRecord,
    Goal,
    Saving,
    goal_records,
    savings_records,
)
from budgetfx.telemetry import TelemetrySink

logger = logging.getLogger(__name__)

INCOME = "income"
EXPENSES = "expenses"
SAVINGS = "savings"
GOALS = "goals"
COLLECTION_NAMES = (INCOME, EXPENSES, SAVINGS, GOALS)
DEFAULT_MAX_SESSIONS = 256


class RecordCollection:
    """One domain's cache, coordinator and totals memo."""

    def __init__(
        self,
        name: str,
        client: ConversionClient,
        telemetry: Optional[TelemetrySink] = None,
        scenario_id: Optional[str] = None,
    ):
        self.name = name
        self.cache = ConversionCache(name)
        self.coordinator = BatchCoordinator(
            self.cache, client, telemetry=telemetry, scenario_id=scenario_id
        )
        self.memo = TotalsMemo(self.cache)

    async def ensure_converted(
        self, records: Sequence[FinancialRecord], target_currency: str
    ) -> BatchOutcome:
        return await self.coordinator.ensure_converted(records, target_currency)

    def totals(self, records: Sequence[FinancialRecord], target_currency: str) -> AggregateTotals:
        return self.memo.totals(records, target_currency)

    def invalidate(self) -> None:
        self.cache.invalidate_all()
        self.memo.clear()


@dataclass(frozen=True)
class SessionSnapshot:
    summary: FinancialSummary
    goal_schedules: List[GoalSchedule]
    income_breakdown: Dict[str, Decimal]
    expense_breakdown: Dict[str, Decimal]
    outcomes: Dict[str, BatchOutcome] = field(default_factory=dict)


class ScenarioSession:
    """
    Engine entry point for one scenario.

    Each domain owns an independent cache; switching scenario or base
    currency invalidates all of them and resets the display currency.
    """

    def __init__(
        self,
        scenario_id: Optional[str],
        base_currency: str,
        client: ConversionClient,
        telemetry: Optional[TelemetrySink] = None,
    ):
        self.display = DisplayCurrencyContext(scenario_id=scenario_id, base_currency=base_currency)
        self.collections: Dict[str, RecordCollection] = {
            name: RecordCollection(name, client, telemetry=telemetry, scenario_id=scenario_id)
            for name in COLLECTION_NAMES
        }

    @property
    def scenario_id(self) -> Optional[str]:
        return self.display.scenario_id

    @property
    def display_currency(self) -> str:
        return self.display.current

    def collection(self, name: str) -> RecordCollection:
        try:
            return self.collections[name]
        except KeyError as exc:
            raise ValueError(f"Unknown collection: {name}") from exc

    def switch_scenario(self, scenario_id: Optional[str], base_currency: str) -> bool:
        changed = self.display.rebase(scenario_id, base_currency)
        if changed:
            logger.info(
                "Scenario changed to %s (%s); invalidating conversion caches",
                scenario_id,
                self.display.base_currency,
            )
            for collection in self.collections.values():
                collection.invalidate()
                collection.coordinator.scenario_id = scenario_id
        return changed

    def select_display_currency(self, currency: Optional[str]) -> str:
        if currency is None:
            return self.display.reset()
        return self.display.select(currency)

    async def refresh(
        self,
        incomes: Sequence[FinancialRecord] = (),
        expenses: Sequence[FinancialRecord] = (),
        savings: Sequence[Saving] = (),
        goals: Sequence[Goal] = (),
        today: Optional[date] = None,
    ) -> SessionSnapshot:
        target = self.display_currency
        saving_rows = savings_records(savings)
        goal_rows = goal_records(goals)

        results = await asyncio.gather(
            self.collections[INCOME].ensure_converted(incomes, target),
            self.collections[EXPENSES].ensure_converted(expenses, target),
            self.collections[SAVINGS].ensure_converted(saving_rows, target),
            self.collections[GOALS].ensure_converted(goal_rows, target),
        )
        outcomes = dict(zip(COLLECTION_NAMES, results))
        return self.snapshot(
            incomes, expenses, savings, goals, today=today, outcomes=outcomes, target=target
        )

    def snapshot(
        self,
        incomes: Sequence[FinancialRecord] = (),
        expenses: Sequence[FinancialRecord] = (),
        savings: Sequence[Saving] = (),
        goals: Sequence[Goal] = (),
        today: Optional[date] = None,
        outcomes: Optional[Dict[str, BatchOutcome]] = None,
        target: Optional[str] = None,
    ) -> SessionSnapshot:
        """Totals from whatever is cached now; unconverted records count at native amounts."""
        target = target or self.display_currency
        income_collection = self.collections[INCOME]
        expense_collection = self.collections[EXPENSES]

        schedules = compute_goal_schedules(
            goals, target, self.collections[GOALS].cache, today=today
        )
        summary = financial_summary(
            target,
            income=income_collection.totals(incomes, target),
            expenses=expense_collection.totals(expenses, target),
            savings=savings_total(savings, target, self.collections[SAVINGS].cache),
            goals=goal_totals(schedules),
        )
        return SessionSnapshot(
            summary=summary,
            goal_schedules=schedules,
            income_breakdown=category_breakdown(incomes, target, income_collection.cache),
            expense_breakdown=category_breakdown(expenses, target, expense_collection.cache),
            outcomes=outcomes or {},
        )

    def close_view(self) -> None:
        self.display.reset()


class SessionRegistry:
    """Keeps one ScenarioSession per scenario id, evicting the least recently used."""

    def __init__(
        self,
        client: ConversionClient,
        telemetry: Optional[TelemetrySink] = None,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
    ):
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1.")
        self._client = client
        self._telemetry = telemetry
        self._max_sessions = max_sessions
        self._sessions: OrderedDict[str, ScenarioSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def get_or_create(self, scenario_id: str, base_currency: str) -> ScenarioSession:
        session = self._sessions.get(scenario_id)
        if session is None:
            session = ScenarioSession(
                scenario_id, base_currency, self._client, telemetry=self._telemetry
            )
            self._sessions[scenario_id] = session
            self._evict()
        else:
            self._sessions.move_to_end(scenario_id)
            session.switch_scenario(scenario_id, base_currency)
        return session

    def drop(self, scenario_id: str) -> bool:
        session = self._sessions.pop(scenario_id, None)
        if session is None:
            return False
        for collection in session.collections.values():
            collection.invalidate()
        return True

    def clear(self) -> None:
        for scenario_id in list(self._sessions):
            self.drop(scenario_id)

    def _evict(self) -> None:
        while len(self._sessions) > self._max_sessions:
            scenario_id, session = self._sessions.popitem(last=False)
            logger.info("Evicting idle scenario session %s", scenario_id)
            for collection in session.collections.values():
                collection.invalidate()
