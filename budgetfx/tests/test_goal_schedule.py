import unittest
from datetime import date
from decimal import Decimal

from budgetfx.conversion_cache import ConversionCache
from budgetfx.goal_schedule import compute_goal_schedule, monthly_payment, months_left
from budgetfx.records import Goal

TODAY = date(2024, 6, 15)


def goal(**overrides) -> Goal:
    values = dict(
        id="g1",
        name="Car",
        target_amount=Decimal("12000"),
        saved_amount=Decimal("0"),
        currency="EUR",
        start_date=date(2024, 1, 1),
        target_date=date(2025, 6, 1),
    )
    values.update(overrides)
    return Goal(**values)


class MonthsLeftTests(unittest.TestCase):
    def test_rounds_partial_months_up(self) -> None:
        self.assertEqual(months_left(date(2024, 7, 16), TODAY), 2)

    def test_a_few_days_counts_as_one_month(self) -> None:
        self.assertEqual(months_left(date(2024, 6, 16), TODAY), 1)

    def test_full_year(self) -> None:
        self.assertEqual(months_left(date(2025, 6, 10), TODAY), 12)

    def test_past_or_today_is_due(self) -> None:
        self.assertIsNone(months_left(TODAY, TODAY))
        self.assertIsNone(months_left(date(2024, 1, 1), TODAY))


class MonthlyPaymentTests(unittest.TestCase):
    def test_remaining_amount_split_over_months(self) -> None:
        self.assertEqual(monthly_payment(Decimal("12000"), Decimal("0"), 12), Decimal("1000"))

    def test_saved_reduces_payment(self) -> None:
        self.assertEqual(monthly_payment(Decimal("1000"), Decimal("400"), 6), Decimal("100"))

    def test_over_saved_goal_pays_nothing(self) -> None:
        self.assertEqual(monthly_payment(Decimal("1000"), Decimal("1500"), 6), Decimal("0"))
        self.assertEqual(monthly_payment(Decimal("1000"), Decimal("1000"), 6), Decimal("0"))

    def test_due_goal_has_no_payment(self) -> None:
        self.assertIsNone(monthly_payment(Decimal("1000"), Decimal("0"), None))

    def test_non_positive_months_raise(self) -> None:
        with self.assertRaises(ValueError):
            monthly_payment(Decimal("1000"), Decimal("0"), 0)


class GoalScheduleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.cache = ConversionCache("goals")

    def test_native_and_converted_payment(self) -> None:
        car = goal(target_date=date(2025, 6, 10))
        self.cache.resolve("g1:target", "USD", Decimal("13200"))
        self.cache.resolve("g1:saved", "USD", Decimal("0"))

        schedule = compute_goal_schedule(car, "USD", self.cache, today=TODAY)

        self.assertEqual(schedule.months_left, 12)
        self.assertEqual(schedule.monthly_payment, Decimal("1000"))
        self.assertEqual(schedule.monthly_payment_converted, Decimal("1100"))
        self.assertEqual(schedule.target_amount_converted, Decimal("13200"))
        self.assertFalse(schedule.is_due)

    def test_same_currency_goal_uses_native_amounts(self) -> None:
        car = goal(currency="USD", target_date=date(2025, 6, 10), saved_amount=Decimal("1200"))

        schedule = compute_goal_schedule(car, "usd", self.cache, today=TODAY)

        self.assertEqual(schedule.monthly_payment, Decimal("900"))
        self.assertEqual(schedule.monthly_payment_converted, Decimal("900"))
        self.assertEqual(len(self.cache), 0)

    def test_unconverted_goal_falls_back_to_native(self) -> None:
        car = goal(target_date=date(2025, 6, 10))

        schedule = compute_goal_schedule(car, "USD", self.cache, today=TODAY)

        self.assertEqual(schedule.monthly_payment_converted, Decimal("1000"))

    def test_past_target_date_is_due(self) -> None:
        car = goal(target_date=date(2024, 6, 1))

        schedule = compute_goal_schedule(car, "USD", self.cache, today=TODAY)

        self.assertTrue(schedule.is_due)
        self.assertIsNone(schedule.monthly_payment)
        self.assertIsNone(schedule.monthly_payment_converted)

    def test_negative_amounts_rejected(self) -> None:
        with self.assertRaises(ValueError):
            goal(saved_amount=Decimal("-1"))


if __name__ == "__main__":
    unittest.main()
