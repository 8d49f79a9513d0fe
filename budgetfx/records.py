from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional

from budgetfx.currency import ZERO, coerce_amount, normalize_currency

FREQUENCY_ALIASES = {
    "monthly": "monthly",
    "annual": "annual",
    "annually": "annual",
    "yearly": "annual",
    "onetime": "one-time",
}

GOAL_TARGET_SUFFIX = "target"
GOAL_SAVED_SUFFIX = "saved"


class Frequency(str, Enum):
    """Recurrence of a record amount."""

    MONTHLY = "monthly"
    ANNUAL = "annual"
    ONE_TIME = "one-time"

    @classmethod
    def parse(cls, value: "Frequency | str") -> "Frequency":
        if isinstance(value, Frequency):
            return value
        normalized = _normalize_frequency(value)
        try:
            return cls(FREQUENCY_ALIASES[normalized])
        except KeyError as exc:
            raise ValueError(
                "Only monthly, annual, or one-time frequencies are supported."
            ) from exc


@dataclass(frozen=True)
class FinancialRecord:
    id: str
    amount: Decimal
    currency: str
    frequency: Frequency = Frequency.MONTHLY
    category: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", coerce_amount(self.amount))
        object.__setattr__(self, "currency", normalize_currency(self.currency))
        object.__setattr__(self, "frequency", Frequency.parse(self.frequency))


@dataclass(frozen=True)
class Saving:
    id: str
    amount: Decimal
    currency: str
    name: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", coerce_amount(self.amount))
        object.__setattr__(self, "currency", normalize_currency(self.currency))

    def as_record(self) -> FinancialRecord:
        return FinancialRecord(
            id=self.id,
            amount=self.amount,
            currency=self.currency,
            frequency=Frequency.ONE_TIME,
            category=self.name,
        )


@dataclass(frozen=True)
class Goal:
    id: str
    name: str
    target_amount: Decimal
    currency: str
    target_date: date
    saved_amount: Decimal = ZERO
    start_date: Optional[date] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "target_amount", coerce_amount(self.target_amount))
        object.__setattr__(self, "saved_amount", coerce_amount(self.saved_amount))
        object.__setattr__(self, "currency", normalize_currency(self.currency))
        if self.target_amount < ZERO:
            raise ValueError("target_amount must not be negative.")
        if self.saved_amount < ZERO:
            raise ValueError("saved_amount must not be negative.")

    def target_record(self) -> FinancialRecord:
        return FinancialRecord(
            id=goal_record_id(self.id, GOAL_TARGET_SUFFIX),
            amount=self.target_amount,
            currency=self.currency,
            frequency=Frequency.ONE_TIME,
        )

    def saved_record(self) -> FinancialRecord:
        return FinancialRecord(
            id=goal_record_id(self.id, GOAL_SAVED_SUFFIX),
            amount=self.saved_amount,
            currency=self.currency,
            frequency=Frequency.ONE_TIME,
        )

    def conversion_records(self) -> List[FinancialRecord]:
        # nothing saved yet reads as zero in any currency
        if self.saved_amount > ZERO:
            return [self.target_record(), self.saved_record()]
        return [self.target_record()]


def goal_record_id(goal_id: str, suffix: str) -> str:
    return f"{goal_id}:{suffix}"


def savings_records(savings: Iterable[Saving]) -> List[FinancialRecord]:
    return [saving.as_record() for saving in savings]


def goal_records(goals: Iterable[Goal]) -> List[FinancialRecord]:
    records: List[FinancialRecord] = []
    for goal in goals:
        records.extend(goal.conversion_records())
    return records


def _normalize_frequency(value: str) -> str:
    return "".join(ch for ch in value.strip().lower() if ch.isalnum())
