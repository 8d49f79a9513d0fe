from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from budgetfx.conversion_cache import ConversionCache
from budgetfx.currency import ZERO, coerce_amount, normalize_currency
from budgetfx.records import Goal

AVERAGE_DAYS_PER_MONTH = 30.44


@dataclass(frozen=True)
class GoalSchedule:
    goal: Goal
    display_currency: str
    months_left: Optional[int]
    monthly_payment: Optional[Decimal]
    monthly_payment_converted: Optional[Decimal]
    target_amount_converted: Decimal
    saved_amount_converted: Decimal

    @property
    def is_due(self) -> bool:
        return self.months_left is None


def months_left(target_date: date, today: date) -> Optional[int]:
    """Whole months until target_date, or None once the date is reached."""
    if target_date <= today:
        return None
    days = (target_date - today).days
    return max(1, math.ceil(days / AVERAGE_DAYS_PER_MONTH))


def monthly_payment(
    target_amount: Decimal, saved_amount: Decimal, months: Optional[int]
) -> Optional[Decimal]:
    if months is None:
        return None
    if months <= 0:
        raise ValueError("months must be greater than zero.")
    remaining = coerce_amount(target_amount) - coerce_amount(saved_amount)
    if remaining <= ZERO:
        return ZERO
    return remaining / Decimal(months)


def compute_goal_schedule(
    goal: Goal,
    display_currency: str,
    cache: ConversionCache,
    today: Optional[date] = None,
) -> GoalSchedule:
    target_currency = normalize_currency(display_currency)
    months = months_left(goal.target_date, today or date.today())

    target_converted = cache.resolved_amount(goal.target_record(), target_currency)
    saved_converted = cache.resolved_amount(goal.saved_record(), target_currency)

    return GoalSchedule(
        goal=goal,
        display_currency=target_currency,
        months_left=months,
        monthly_payment=monthly_payment(goal.target_amount, goal.saved_amount, months),
        monthly_payment_converted=monthly_payment(target_converted, saved_converted, months),
        target_amount_converted=target_converted,
        saved_amount_converted=saved_converted,
    )


def compute_goal_schedules(
    goals: Iterable[Goal],
    display_currency: str,
    cache: ConversionCache,
    today: Optional[date] = None,
) -> List[GoalSchedule]:
    current = today or date.today()
    return [compute_goal_schedule(goal, display_currency, cache, current) for goal in goals]
