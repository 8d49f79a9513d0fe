import unittest
from decimal import Decimal

from budgetfx.conversion_cache import ConversionCache, LookupStatus, record_source
from budgetfx.records import FinancialRecord, Frequency


def record(record_id: str, amount: str, currency: str) -> FinancialRecord:
    return FinancialRecord(
        id=record_id, amount=Decimal(amount), currency=currency, frequency=Frequency.MONTHLY
    )


class ConversionCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        self.cache = ConversionCache("income")

    def test_same_currency_lookup_is_native_and_creates_no_entry(self) -> None:
        salary = record("r1", "2500.00", "USD")

        result = self.cache.get(salary, "usd")

        self.assertEqual(result.status, LookupStatus.NATIVE)
        self.assertEqual(result.amount, Decimal("2500.00"))
        self.assertEqual(len(self.cache), 0)
        self.assertNotIn(("r1", "USD"), self.cache)

    def test_missing_then_pending_then_resolved(self) -> None:
        rent = record("r2", "900", "EUR")

        self.assertEqual(self.cache.get(rent, "USD").status, LookupStatus.MISSING)

        self.cache.mark_pending(["r2"], "USD")
        self.assertEqual(self.cache.get(rent, "USD").status, LookupStatus.PENDING)

        self.cache.resolve("r2", "USD", Decimal("990"))
        result = self.cache.get(rent, "USD")
        self.assertEqual(result.status, LookupStatus.RESOLVED)
        self.assertEqual(result.amount, Decimal("990"))

    def test_mark_pending_is_idempotent(self) -> None:
        first = self.cache.mark_pending(["a", "b"], "USD")
        version = self.cache.version
        second = self.cache.mark_pending(["a", "b"], "USD")

        self.assertEqual(first, ["a", "b"])
        self.assertEqual(second, [])
        self.assertEqual(self.cache.version, version)
        self.assertEqual(len(self.cache), 2)

    def test_mark_pending_does_not_downgrade_resolved(self) -> None:
        self.cache.resolve("a", "USD", Decimal("1"))
        self.cache.mark_pending(["a"], "USD")

        self.assertEqual(self.cache.lookup("a", "USD").status, LookupStatus.RESOLVED)

    def test_resolve_accepts_missing_key(self) -> None:
        self.cache.resolve("seeded", "GBP", Decimal("42"))

        self.assertEqual(self.cache.lookup("seeded", "GBP").amount, Decimal("42"))

    def test_resolved_entry_is_not_overwritten(self) -> None:
        self.cache.resolve("a", "USD", Decimal("1"))
        self.cache.resolve("a", "USD", Decimal("2"))

        self.assertEqual(self.cache.lookup("a", "USD").amount, Decimal("1"))

    def test_resolved_amount_falls_back_to_native(self) -> None:
        rent = record("r2", "900", "EUR")
        self.cache.mark_pending(["r2"], "USD")

        self.assertEqual(self.cache.resolved_amount(rent, "USD"), Decimal("900"))

    def test_release_drops_only_pending_marks(self) -> None:
        self.cache.mark_pending(["a", "b"], "USD")
        self.cache.resolve("b", "USD", Decimal("5"))

        self.cache.release(["a", "b"], "USD")

        self.assertEqual(self.cache.lookup("a", "USD").status, LookupStatus.MISSING)
        self.assertEqual(self.cache.lookup("b", "USD").status, LookupStatus.RESOLVED)

    def test_entries_are_per_target_currency(self) -> None:
        self.cache.resolve("a", "USD", Decimal("5"))

        self.assertEqual(self.cache.lookup("a", "GBP").status, LookupStatus.MISSING)

    def test_invalidate_all_clears_and_bumps_generation(self) -> None:
        self.cache.resolve("a", "USD", Decimal("5"))
        self.cache.mark_pending(["b"], "USD")
        generation = self.cache.generation

        self.cache.invalidate_all()

        self.assertEqual(len(self.cache), 0)
        self.assertEqual(self.cache.generation, generation + 1)


    def test_edited_amount_reads_as_missing(self) -> None:
        rent = record("r2", "900", "EUR")
        self.cache.mark_pending(["r2"], "USD", {"r2": record_source(rent)})
        self.cache.resolve("r2", "USD", Decimal("990"), source=record_source(rent))

        edited = record("r2", "1000", "EUR")

        self.assertEqual(self.cache.get(edited, "USD").status, LookupStatus.MISSING)
        self.assertEqual(self.cache.resolved_amount(edited, "USD"), Decimal("1000"))
        self.assertEqual(self.cache.get(record("r2", "900.00", "EUR"), "USD").amount, Decimal("990"))

    def test_edited_currency_reads_as_missing(self) -> None:
        rent = record("r2", "900", "EUR")
        self.cache.resolve("r2", "USD", Decimal("990"), source=record_source(rent))

        self.assertEqual(self.cache.get(record("r2", "900", "GBP"), "USD").status, LookupStatus.MISSING)

    def test_mark_pending_replaces_entry_for_old_source(self) -> None:
        old = record("r2", "900", "EUR")
        new = record("r2", "1000", "EUR")
        self.cache.resolve("r2", "USD", Decimal("990"), source=record_source(old))

        marked = self.cache.mark_pending(["r2"], "USD", {"r2": record_source(new)})

        self.assertEqual(marked, ["r2"])
        self.assertEqual(self.cache.get(new, "USD").status, LookupStatus.PENDING)

    def test_resolve_for_old_source_does_not_overwrite_newer_mark(self) -> None:
        old = record("r2", "900", "EUR")
        new = record("r2", "1000", "EUR")
        self.cache.mark_pending(["r2"], "USD", {"r2": record_source(new)})

        self.cache.resolve("r2", "USD", Decimal("990"), source=record_source(old))

        self.assertEqual(self.cache.get(new, "USD").status, LookupStatus.PENDING)

    def test_release_keeps_newer_mark(self) -> None:
        old = record("r2", "900", "EUR")
        new = record("r2", "1000", "EUR")
        self.cache.mark_pending(["r2"], "USD", {"r2": record_source(new)})

        self.cache.release(["r2"], "USD", {"r2": record_source(old)})

        self.assertEqual(self.cache.get(new, "USD").status, LookupStatus.PENDING)


if __name__ == "__main__":
    unittest.main()
