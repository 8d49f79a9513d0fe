from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Protocol, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from budgetfx.currency import coerce_amount, normalize_currency
from budgetfx.exceptions import ConversionFailure

logger = logging.getLogger(__name__)

DEFAULT_RATES: dict[str, Decimal] = {
    "USD": Decimal("1"),
    "EUR": Decimal("0.92"),
    "GBP": Decimal("0.79"),
    "JPY": Decimal("147.50"),
    "CAD": Decimal("1.34"),
    "AUD": Decimal("1.52"),
    "NZD": Decimal("1.64"),
    "CHF": Decimal("0.88"),
    "SEK": Decimal("10.45"),
    "RUB": Decimal("92.50"),
}


@dataclass(frozen=True)
class ConversionItem:
    amount: Decimal
    currency: str


class ConversionClient(Protocol):
    """
    Boundary to the external conversion service.

    Callers never request a same-currency conversion. Failures raise
    ConversionFailure; no retry happens here.
    """

    async def convert_one(
        self, amount: Decimal, from_currency: str, to_currency: str
    ) -> Decimal:
        ...

    async def convert_batch(
        self, items: Sequence[ConversionItem], to_currency: str
    ) -> dict[int, Decimal]:
        """
        Convert all items to one currency in a single round-trip.

        Returns a map from input position to converted amount. Positions the
        service could not convert are omitted.
        """
        ...


@dataclass(frozen=True)
class RateTable:
    """
    Fixed exchange rates quoted against one anchor currency.

    Each rate is the number of units of that currency per 1 anchor unit, so
    cross rates between two non-anchor currencies go through the anchor.
    """

    rates: Mapping[str, Decimal] = field(default_factory=lambda: dict(DEFAULT_RATES))
    anchor: str = "USD"

    def __post_init__(self) -> None:
        anchor = normalize_currency(self.anchor)
        rates = {normalize_currency(code): coerce_amount(rate) for code, rate in self.rates.items()}
        for code, rate in rates.items():
            if rate <= 0:
                raise ValueError(f"Rate for {code} must be positive.")
        rates[anchor] = Decimal("1")
        object.__setattr__(self, "anchor", anchor)
        object.__setattr__(self, "rates", rates)

    def with_overrides(self, overrides: Mapping[str, Decimal]) -> "RateTable":
        return RateTable(rates={**self.rates, **overrides}, anchor=self.anchor)

    def rate(self, currency: str) -> Decimal:
        code = normalize_currency(currency)
        try:
            return self.rates[code]
        except KeyError as exc:
            raise ValueError(f"Unsupported currency: {code}") from exc

    def cross_rate(self, from_currency: str, to_currency: str) -> Decimal:
        if normalize_currency(from_currency) == normalize_currency(to_currency):
            return Decimal("1")
        return self.rate(to_currency) / self.rate(from_currency)

    def convert(self, amount: Decimal | int | str, from_currency: str, to_currency: str) -> Decimal:
        value = coerce_amount(amount)
        if normalize_currency(from_currency) == normalize_currency(to_currency):
            return value
        return value * self.cross_rate(from_currency, to_currency)


class RateTableConversionClient:
    """In-process conversion client backed by a RateTable."""

    def __init__(self, table: RateTable | None = None):
        self._table = table or RateTable()

    @property
    def table(self) -> RateTable:
        return self._table

    async def convert_one(
        self, amount: Decimal, from_currency: str, to_currency: str
    ) -> Decimal:
        try:
            return self._table.convert(amount, from_currency, to_currency)
        except ValueError as exc:
            raise ConversionFailure(str(exc)) from exc

    async def convert_batch(
        self, items: Sequence[ConversionItem], to_currency: str
    ) -> dict[int, Decimal]:
        target = normalize_currency(to_currency)
        try:
            self._table.rate(target)
        except ValueError as exc:
            raise ConversionFailure(str(exc)) from exc

        # one cross rate per source currency in the batch
        cross_rates: dict[str, Decimal | None] = {}
        results: dict[int, Decimal] = {}
        for index, item in enumerate(items):
            source = normalize_currency(item.currency)
            if source not in cross_rates:
                try:
                    cross_rates[source] = self._table.cross_rate(source, target)
                except ValueError:
                    logger.debug("No rate for %s; leaving it out of the batch", source)
                    cross_rates[source] = None
            rate = cross_rates[source]
            if rate is not None:
                results[index] = coerce_amount(item.amount) * rate
        return results


def parse_rate_overrides(raw: str | None) -> dict[str, Decimal]:
    """Parse ``"EUR=0.92,GBP=0.79"`` into a rate mapping."""
    if not raw or not raw.strip():
        return {}
    overrides: dict[str, Decimal] = {}
    for chunk in raw.split(","):
        if not chunk.strip():
            continue
        code, sep, value = chunk.partition("=")
        if not sep:
            raise ValueError(f"Rate override must look like CODE=RATE, got {chunk.strip()!r}.")
        try:
            rate = Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError(f"Invalid rate for {code.strip()}: {value.strip()!r}.") from exc
        if rate <= 0:
            raise ValueError(f"Rate for {code.strip()} must be positive.")
        overrides[normalize_currency(code)] = rate
    return overrides


class HttpConversionClient:
    """
    JSON-over-HTTP client for a remote conversion service.

    POST {base_url}/convert       {"amount", "from_currency", "to_currency"}
    POST {base_url}/convert/bulk  {"items": [{"amount", "currency"}], "to_currency"}

    Bulk responses are a list (or {"results": [...]}) of rows order-correlated
    with the request items; rows without "converted_amount" are omitted.
    """

    def __init__(self, base_url: str, timeout_seconds: float = 8):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds

    async def convert_one(
        self, amount: Decimal, from_currency: str, to_currency: str
    ) -> Decimal:
        payload = {
            "amount": str(coerce_amount(amount)),
            "from_currency": normalize_currency(from_currency),
            "to_currency": normalize_currency(to_currency),
        }
        data = await asyncio.to_thread(self._post, "/convert", payload)
        rows = _response_rows(data)
        if not rows or _converted_amount(rows[0]) is None:
            raise ConversionFailure("Currency conversion returned invalid data")
        return _converted_amount(rows[0])

    async def convert_batch(
        self, items: Sequence[ConversionItem], to_currency: str
    ) -> dict[int, Decimal]:
        payload = {
            "items": [
                {"amount": str(coerce_amount(item.amount)), "currency": item.currency}
                for item in items
            ],
            "to_currency": normalize_currency(to_currency),
        }
        data = await asyncio.to_thread(self._post, "/convert/bulk", payload)
        results: dict[int, Decimal] = {}
        for index, row in enumerate(_response_rows(data)):
            if index >= len(items):
                break
            converted = _converted_amount(row)
            if converted is not None:
                results[index] = converted
        return results

    def _post(self, path: str, payload: dict[str, Any]) -> Any:
        request = Request(
            f"{self._base_url}{path}",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urlopen(request, timeout=self._timeout) as response:
                return json.load(response)
        except (HTTPError, URLError, TimeoutError, json.JSONDecodeError) as exc:
            raise ConversionFailure(f"Conversion service unavailable: {exc}") from exc


def _response_rows(data: Any) -> list[Any]:
    if isinstance(data, dict):
        if "results" in data:
            data = data["results"]
        else:
            data = [data]
    if not isinstance(data, list):
        raise ConversionFailure("Conversion service returned an unexpected payload")
    return data


def _converted_amount(row: Any) -> Decimal | None:
    if not isinstance(row, dict):
        return None
    value = row.get("converted_amount")
    if value is None:
        return None
    return Decimal(str(value))
