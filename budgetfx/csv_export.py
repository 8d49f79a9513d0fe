from __future__ import annotations

import csv
import io
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from budgetfx.conversion_cache import ConversionCache
from budgetfx.currency import normalize_currency
from budgetfx.goal_schedule import GoalSchedule
from budgetfx.records import FinancialRecord, Saving

CSV_COLUMNS = [
    "section",
    "id",
    "label",
    "frequency",
    "amount",
    "currency",
    "display_amount",
    "display_currency",
    "converted",
    "monthly_payment",
]

CENT = Decimal("0.01")


def export_records_csv(
    target_currency: str,
    caches: Mapping[str, ConversionCache],
    incomes: Iterable[FinancialRecord] = (),
    expenses: Iterable[FinancialRecord] = (),
    savings: Iterable[Saving] = (),
    goals: Iterable[GoalSchedule] = (),
) -> str:
    """Render records with native and display-currency amounts as CSV text."""
    target = normalize_currency(target_currency)
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)

    for record in incomes:
        writer.writerow(_record_row("income", record, record.category, target, caches["income"]))
    for record in expenses:
        writer.writerow(_record_row("expense", record, record.category, target, caches["expenses"]))
    for saving in savings:
        writer.writerow(
            _record_row("saving", saving.as_record(), saving.name, target, caches["savings"], frequency="")
        )
    for schedule in goals:
        goal = schedule.goal
        row = _record_row("goal", goal.target_record(), goal.name, target, caches["goals"], frequency="")
        row[1] = goal.id
        row[-1] = _format_amount(schedule.monthly_payment_converted)
        writer.writerow(row)
    return buffer.getvalue()


def _record_row(
    section: str,
    record: FinancialRecord,
    label: Optional[str],
    target: str,
    cache: ConversionCache,
    frequency: Optional[str] = None,
) -> list[str]:
    lookup = cache.get(record, target)
    return [
        section,
        record.id,
        label or "",
        record.frequency.value if frequency is None else frequency,
        _format_amount(record.amount),
        record.currency,
        _format_amount(cache.resolved_amount(record, target)),
        target,
        "yes" if lookup.is_settled else "no",
        "",
    ]


def _format_amount(amount: Optional[Decimal]) -> str:
    if amount is None:
        return ""
    return str(amount.quantize(CENT))
