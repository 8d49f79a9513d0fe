from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal

from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from budgetfx.aggregator import AggregateTotals, monthly_breakdown_items
from budgetfx.conversion_client import (
    ConversionClient,
    HttpConversionClient,
    RateTable,
    RateTableConversionClient,
)
from budgetfx.csv_export import export_records_csv
from budgetfx.currency import normalize_currency
from budgetfx.exceptions import ConversionFailure
from budgetfx.goal_schedule import GoalSchedule
from budgetfx.logging_config import setup_logging
from budgetfx.records import FinancialRecord, Goal, Saving
from budgetfx.session import ScenarioSession, SessionRegistry, SessionSnapshot
from budgetfx.settings import Settings, get_settings
from budgetfx.telemetry import HttpTelemetrySink, LoggingTelemetrySink, TelemetrySink

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def build_conversion_client(settings: Settings) -> ConversionClient:
    if settings.conversion_url:
        return HttpConversionClient(
            settings.conversion_url, timeout_seconds=settings.http_timeout_seconds
        )
    return RateTableConversionClient(RateTable().with_overrides(settings.rate_overrides))


def build_telemetry_sink(settings: Settings) -> TelemetrySink:
    if settings.telemetry_url:
        return HttpTelemetrySink(settings.telemetry_url)
    return LoggingTelemetrySink()


SETTINGS = get_settings()
CONVERSION_CLIENT = build_conversion_client(SETTINGS)
TELEMETRY = build_telemetry_sink(SETTINGS)
SESSIONS = SessionRegistry(
    CONVERSION_CLIENT, telemetry=TELEMETRY, max_sessions=SETTINGS.max_sessions
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    yield
    SESSIONS.clear()


app = FastAPI(title="budgetfx", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[SETTINGS.frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ConvertPayload(BaseModel):
    amount: Decimal
    from_currency: str
    to_currency: str


class ConvertResponse(BaseModel):
    amount: Decimal
    from_currency: str
    to_currency: str
    converted_amount: Decimal


class RecordPayload(BaseModel):
    id: str
    amount: Decimal
    currency: str
    frequency: str = "monthly"
    category: str | None = None

    def to_record(self) -> FinancialRecord:
        if self.amount < 0:
            raise ValueError("Amount must not be negative.")
        return FinancialRecord(
            id=self.id,
            amount=self.amount,
            currency=self.currency,
            frequency=self.frequency,
            category=self.category.strip() if self.category else None,
        )


class SavingPayload(BaseModel):
    id: str
    amount: Decimal
    currency: str
    name: str | None = None

    def to_saving(self) -> Saving:
        return Saving(id=self.id, amount=self.amount, currency=self.currency, name=self.name)


class GoalPayload(BaseModel):
    id: str
    name: str
    target_amount: Decimal
    saved_amount: Decimal = Decimal("0")
    currency: str
    start_date: date | None = None
    target_date: date

    def to_goal(self) -> Goal:
        return Goal(
            id=self.id,
            name=self.name.strip(),
            target_amount=self.target_amount,
            saved_amount=self.saved_amount,
            currency=self.currency,
            start_date=self.start_date,
            target_date=self.target_date,
        )


class SummaryPayload(BaseModel):
    base_currency: str | None = None
    display_currency: str | None = None
    incomes: list[RecordPayload] = []
    expenses: list[RecordPayload] = []
    savings: list[SavingPayload] = []
    goals: list[GoalPayload] = []
    today: date | None = None


class TotalsResponse(BaseModel):
    monthly: Decimal
    annual: Decimal
    lifetime: Decimal


class GoalScheduleResponse(BaseModel):
    id: str
    name: str
    currency: str
    months_left: int | None = None
    monthly_payment: Decimal | None = None
    monthly_payment_converted: Decimal | None = None
    target_amount_converted: Decimal
    saved_amount_converted: Decimal
    is_due: bool


class GoalTotalsResponse(BaseModel):
    total_target: Decimal
    total_saved: Decimal
    total_monthly_payment: Decimal
    goals_total: int


class BreakdownEntry(BaseModel):
    name: str
    value: Decimal


class SummaryResponse(BaseModel):
    scenario_id: str
    base_currency: str | None = None
    display_currency: str
    income: TotalsResponse
    expenses: TotalsResponse
    savings_total: Decimal
    goals: GoalTotalsResponse
    remainder: Decimal
    goal_schedules: list[GoalScheduleResponse]
    income_breakdown: list[BreakdownEntry]
    expense_breakdown: list[BreakdownEntry]
    failed_collections: list[str]


def money(value: Decimal | None) -> Decimal | None:
    if value is None:
        return None
    return value.quantize(CENT)


def totals_response(totals: AggregateTotals) -> TotalsResponse:
    return TotalsResponse(
        monthly=money(totals.monthly),
        annual=money(totals.annual),
        lifetime=money(totals.lifetime),
    )


def goal_schedule_response(schedule: GoalSchedule) -> GoalScheduleResponse:
    return GoalScheduleResponse(
        id=schedule.goal.id,
        name=schedule.goal.name,
        currency=schedule.goal.currency,
        months_left=schedule.months_left,
        monthly_payment=money(schedule.monthly_payment),
        monthly_payment_converted=money(schedule.monthly_payment_converted),
        target_amount_converted=money(schedule.target_amount_converted),
        saved_amount_converted=money(schedule.saved_amount_converted),
        is_due=schedule.is_due,
    )


def breakdown_response(breakdown: dict[str, Decimal]) -> list[BreakdownEntry]:
    return [
        BreakdownEntry(name=name, value=money(value))
        for name, value in monthly_breakdown_items(breakdown)
    ]


def parse_collections(
    payload: SummaryPayload,
) -> tuple[list[FinancialRecord], list[FinancialRecord], list[Saving], list[Goal]]:
    try:
        incomes = [item.to_record() for item in payload.incomes]
        expenses = [item.to_record() for item in payload.expenses]
        savings = [item.to_saving() for item in payload.savings]
        goals = [item.to_goal() for item in payload.goals]
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return incomes, expenses, savings, goals


def open_session(scenario_id: str, payload: SummaryPayload) -> ScenarioSession:
    try:
        base_currency = payload.base_currency or SETTINGS.default_currency
        session = SESSIONS.get_or_create(scenario_id, base_currency)
        session.select_display_currency(payload.display_currency)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return session


def summary_response(session: ScenarioSession, snapshot: SessionSnapshot) -> SummaryResponse:
    summary = snapshot.summary
    return SummaryResponse(
        scenario_id=session.scenario_id,
        base_currency=session.display.base_currency,
        display_currency=summary.currency,
        income=totals_response(summary.income),
        expenses=totals_response(summary.expenses),
        savings_total=money(summary.savings_total),
        goals=GoalTotalsResponse(
            total_target=money(summary.goals.total_target),
            total_saved=money(summary.goals.total_saved),
            total_monthly_payment=money(summary.goals.total_monthly_payment),
            goals_total=summary.goals.goals_total,
        ),
        remainder=money(summary.remainder),
        goal_schedules=[goal_schedule_response(item) for item in snapshot.goal_schedules],
        income_breakdown=breakdown_response(snapshot.income_breakdown),
        expense_breakdown=breakdown_response(snapshot.expense_breakdown),
        failed_collections=sorted(
            name for name, outcome in snapshot.outcomes.items() if outcome.failed
        ),
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/convert", response_model=ConvertResponse)
async def convert(payload: ConvertPayload) -> ConvertResponse:
    try:
        source = normalize_currency(payload.from_currency)
        target = normalize_currency(payload.to_currency)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if source == target:
        converted = payload.amount
    else:
        try:
            converted = await CONVERSION_CLIENT.convert_one(payload.amount, source, target)
        except ConversionFailure as exc:
            raise HTTPException(status_code=502, detail=exc.message) from exc
    return ConvertResponse(
        amount=payload.amount,
        from_currency=source,
        to_currency=target,
        converted_amount=converted,
    )


@app.post("/scenarios/{scenario_id}/summary", response_model=SummaryResponse)
async def scenario_summary(scenario_id: str, payload: SummaryPayload) -> SummaryResponse:
    incomes, expenses, savings, goals = parse_collections(payload)
    session = open_session(scenario_id, payload)
    snapshot = await session.refresh(incomes, expenses, savings, goals, today=payload.today)
    return summary_response(session, snapshot)


@app.post("/scenarios/{scenario_id}/export")
async def scenario_export(scenario_id: str, payload: SummaryPayload) -> Response:
    incomes, expenses, savings, goals = parse_collections(payload)
    session = open_session(scenario_id, payload)
    snapshot = await session.refresh(incomes, expenses, savings, goals, today=payload.today)
    content = export_records_csv(
        snapshot.summary.currency,
        {name: collection.cache for name, collection in session.collections.items()},
        incomes=incomes,
        expenses=expenses,
        savings=savings,
        goals=snapshot.goal_schedules,
    )
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{scenario_id}-budget.csv"'},
    )


@app.delete("/scenarios/{scenario_id}")
def drop_scenario(scenario_id: str) -> dict:
    if not SESSIONS.drop(scenario_id):
        raise HTTPException(status_code=404, detail="Scenario session not found.")
    return {"status": "deleted"}
