from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from budgetfx.currency import ZERO, coerce_amount
from budgetfx.records import Frequency

MONTHS_PER_YEAR = Decimal("12")


@dataclass(frozen=True)
class NormalizedAmount:
    monthly: Decimal
    annual: Decimal
    lifetime: Decimal


def monthly_to_annual(amount: Decimal) -> Decimal:
    return coerce_amount(amount) * MONTHS_PER_YEAR


def annual_to_monthly(amount: Decimal) -> Decimal:
    return coerce_amount(amount) / MONTHS_PER_YEAR


def monthly_equivalent(amount: Decimal, frequency: Frequency | str) -> Decimal:
    """Per-month figure; one-time amounts are amortized over twelve months."""
    normalized = Frequency.parse(frequency)
    if normalized is Frequency.MONTHLY:
        return coerce_amount(amount)
    return annual_to_monthly(amount)


def annual_equivalent(amount: Decimal, frequency: Frequency | str) -> Decimal:
    normalized = Frequency.parse(frequency)
    if normalized is Frequency.MONTHLY:
        return monthly_to_annual(amount)
    return coerce_amount(amount)


def lifetime_amount(amount: Decimal, frequency: Frequency | str) -> Decimal:
    if Frequency.parse(frequency) is Frequency.ONE_TIME:
        return coerce_amount(amount)
    return ZERO


def normalize(amount: Decimal, frequency: Frequency | str) -> NormalizedAmount:
    normalized = Frequency.parse(frequency)
    return NormalizedAmount(
        monthly=monthly_equivalent(amount, normalized),
        annual=annual_equivalent(amount, normalized),
        lifetime=lifetime_amount(amount, normalized),
    )
