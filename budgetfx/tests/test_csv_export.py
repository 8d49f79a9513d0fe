import csv
import io
import unittest
from datetime import date
from decimal import Decimal

from budgetfx.conversion_cache import ConversionCache
from budgetfx.csv_export import CSV_COLUMNS, export_records_csv
from budgetfx.goal_schedule import compute_goal_schedules
from budgetfx.records import FinancialRecord, Frequency, Goal, Saving


class CsvExportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.caches = {name: ConversionCache(name) for name in ("income", "expenses", "savings", "goals")}

    def export_rows(self, **kwargs) -> list[dict]:
        content = export_records_csv("USD", self.caches, **kwargs)
        return list(csv.DictReader(io.StringIO(content)))

    def test_header_only_for_empty_export(self) -> None:
        content = export_records_csv("usd", self.caches)

        self.assertEqual(content.strip(), ",".join(CSV_COLUMNS))

    def test_rows_carry_native_and_display_amounts(self) -> None:
        self.caches["income"].resolve("bonus", "USD", Decimal("1320"))
        incomes = [
            FinancialRecord(id="bonus", amount=Decimal("1200"), currency="EUR", frequency=Frequency.ANNUAL, category="Bonus"),
        ]
        expenses = [
            FinancialRecord(id="gym", amount=Decimal("40"), currency="GBP", frequency=Frequency.MONTHLY),
        ]

        rows = self.export_rows(incomes=incomes, expenses=expenses)

        self.assertEqual(rows[0]["section"], "income")
        self.assertEqual(rows[0]["label"], "Bonus")
        self.assertEqual(rows[0]["frequency"], "annual")
        self.assertEqual(rows[0]["amount"], "1200.00")
        self.assertEqual(rows[0]["display_amount"], "1320.00")
        self.assertEqual(rows[0]["converted"], "yes")
        self.assertEqual(rows[1]["display_amount"], "40.00")
        self.assertEqual(rows[1]["converted"], "no")

    def test_savings_and_goals(self) -> None:
        self.caches["goals"].resolve("car:target", "USD", Decimal("13200"))
        self.caches["goals"].resolve("car:saved", "USD", Decimal("0"))
        goals = [
            Goal(id="car", name="Car", target_amount=Decimal("12000"), currency="EUR", target_date=date(2025, 6, 10)),
        ]
        schedules = compute_goal_schedules(goals, "USD", self.caches["goals"], today=date(2024, 6, 15))
        savings = [Saving(id="cushion", amount=Decimal("250"), currency="USD", name="Cushion")]

        rows = self.export_rows(savings=savings, goals=schedules)

        self.assertEqual(rows[0]["section"], "saving")
        self.assertEqual(rows[0]["converted"], "yes")
        self.assertEqual(rows[1]["section"], "goal")
        self.assertEqual(rows[1]["id"], "car")
        self.assertEqual(rows[1]["display_amount"], "13200.00")
        self.assertEqual(rows[1]["monthly_payment"], "1100.00")


if __name__ == "__main__":
    unittest.main()
