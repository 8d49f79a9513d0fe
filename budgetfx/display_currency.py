from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from budgetfx.currency import normalize_currency


@dataclass
class DisplayCurrencyContext:
    """
    The currency one collection's totals are shown in.

    Starts at the scenario's base currency, may be overridden per view, and
    falls back to the base when the scenario changes or the view closes.
    """

    scenario_id: Optional[str]
    base_currency: str
    override: Optional[str] = None

    def __post_init__(self) -> None:
        self.base_currency = normalize_currency(self.base_currency)
        if self.override is not None:
            self.override = normalize_currency(self.override)

    @property
    def current(self) -> str:
        return self.override or self.base_currency

    @property
    def is_overridden(self) -> bool:
        return self.override is not None

    def select(self, currency: str) -> str:
        self.override = normalize_currency(currency)
        return self.current

    def reset(self) -> str:
        self.override = None
        return self.current

    def rebase(self, scenario_id: Optional[str], base_currency: str) -> bool:
        """Point at a new scenario/base; returns True if either changed."""
        normalized = normalize_currency(base_currency)
        changed = scenario_id != self.scenario_id or normalized != self.base_currency
        if changed:
            self.scenario_id = scenario_id
            self.base_currency = normalized
            self.override = None
        return changed
