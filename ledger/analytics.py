"""Summary figures for the dashboard: balances, periods, accounts, goals, debts."""
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Iterable, Optional, Tuple

import numpy as np
import pandas as pd

from ledger.domain import Account, Debt, SavingsGoal, Transaction

PERIODS = ("daily", "weekly", "monthly", "yearly", "payroll")

PERIOD_LABELS = {
    "daily": "Today",
    "weekly": "This week",
    "monthly": "This month",
    "yearly": "This year",
    "payroll": "Payroll period",
}


@dataclass(frozen=True)
class BalanceSummary:
    total: float
    savings: float
    daily: float


@dataclass(frozen=True)
class PeriodSummary:
    period: str
    label: str
    start: date
    previous_start: date
    income: float
    expense: float
    previous_income: float
    previous_expense: float
    income_change: float
    expense_change: float


@dataclass(frozen=True)
class AccountStats:
    income: float
    expense: float
    transfers: int
    total: int


@dataclass(frozen=True)
class DebtSummary:
    remaining: float
    original: float
    paid: float
    progress: float


def format_currency(amount: float, symbol: str = "Rp") -> str:
    """Format like id-ID currency: ``Rp 1.250.000``, ``-Rp 50.000``."""
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol} {abs(amount):,.0f}".replace(",", ".")


def format_compact(amount: float) -> str:
    if amount >= 1_000_000:
        return f"{amount / 1_000_000:.1f}M"
    if amount >= 1_000:
        return f"{amount / 1_000:.0f}K"
    return f"{amount:.0f}"


def balance_summary(accounts: Iterable[Account]) -> BalanceSummary:
    accounts = tuple(accounts)
    total = sum(a.balance for a in accounts)
    savings = sum(a.balance for a in accounts if a.is_savings)
    return BalanceSummary(total=total, savings=savings, daily=total - savings)


def _month_day(year: int, month: int, day: int) -> date:
    # Walk back across year boundaries and clamp the day to the month length.
    while month < 1:
        month += 12
        year -= 1
    last = (pd.Timestamp(year=year, month=month, day=1) + pd.offsets.MonthEnd(0)).day
    return date(year, month, min(day, last))


def period_bounds(period: str, now: date, payroll_day: int = 28) -> Tuple[date, date]:
    """Return (start, previous_start) of the current and previous period."""
    if period == "daily":
        return now, now - timedelta(days=1)
    if period == "weekly":
        # weeks start on Sunday
        start = now - timedelta(days=(now.weekday() + 1) % 7)
        return start, start - timedelta(days=7)
    if period == "yearly":
        return date(now.year, 1, 1), date(now.year - 1, 1, 1)
    if period == "payroll":
        if now.day >= payroll_day:
            return (
                _month_day(now.year, now.month, payroll_day),
                _month_day(now.year, now.month - 1, payroll_day),
            )
        return (
            _month_day(now.year, now.month - 1, payroll_day),
            _month_day(now.year, now.month - 2, payroll_day),
        )
    if period == "monthly":
        return date(now.year, now.month, 1), _month_day(now.year, now.month - 1, 1)
    raise ValueError(f"unknown period {period!r}, expected one of {PERIODS}")


def _income_expense(trans: Iterable[Transaction]) -> Tuple[float, float]:
    trans = tuple(trans)
    income = sum(t.amount for t in trans if t.type == "income")
    expense = abs(sum(t.amount for t in trans if t.type == "expense"))
    return income, expense


def _change(current: float, previous: float) -> float:
    return (current - previous) / previous * 100 if previous > 0 else 0.0


def period_summary(
    trans: Iterable[Transaction],
    period: str,
    now: Optional[date] = None,
    payroll_day: int = 28,
) -> PeriodSummary:
    now = now or date.today()
    start, previous_start = period_bounds(period, now, payroll_day)
    trans = tuple(trans)
    current = [t for t in trans if date.fromisoformat(t.date[:10]) >= start]
    previous = [
        t for t in trans
        if previous_start <= date.fromisoformat(t.date[:10]) < start
    ]
    income, expense = _income_expense(current)
    prev_income, prev_expense = _income_expense(previous)
    return PeriodSummary(
        period=period,
        label=PERIOD_LABELS[period],
        start=start,
        previous_start=previous_start,
        income=income,
        expense=expense,
        previous_income=prev_income,
        previous_expense=prev_expense,
        income_change=_change(income, prev_income),
        expense_change=_change(expense, prev_expense),
    )


def _is_inflow(t: Transaction, acc_id: str) -> bool:
    return t.account_id == acc_id and (
        t.type == "income" or (t.type == "transfer" and t.amount > 0)
    )


def _is_outflow(t: Transaction, acc_id: str) -> bool:
    return t.account_id == acc_id and (
        t.type == "expense" or (t.type == "transfer" and t.amount < 0)
    )


def account_stats(trans: Iterable[Transaction], acc_id: str) -> AccountStats:
    own = [t for t in trans if t.account_id == acc_id]
    return AccountStats(
        income=sum(abs(t.amount) for t in own if _is_inflow(t, acc_id)),
        expense=sum(abs(t.amount) for t in own if _is_outflow(t, acc_id)),
        transfers=sum(1 for t in own if t.type == "transfer"),
        total=len(own),
    )


def savings_balance(accounts: Iterable[Account]) -> float:
    return sum(a.balance for a in accounts if a.is_savings)


def goal_progress(goal: SavingsGoal, accounts: Iterable[Account]) -> float:
    """Percentage of the goal covered by savings accounts, capped at 100."""
    if goal.target_amount <= 0:
        return 100.0
    return min(savings_balance(accounts) / goal.target_amount * 100, 100.0)


def debt_summary(debts: Iterable[Debt]) -> DebtSummary:
    debts = tuple(debts)
    remaining = sum(d.remaining_amount for d in debts)
    original = sum(d.total_amount for d in debts)
    paid = original - remaining
    return DebtSummary(
        remaining=remaining,
        original=original,
        paid=paid,
        progress=paid / original * 100 if original > 0 else 0.0,
    )


def transactions_frame(
    trans: Iterable[Transaction], accounts: Iterable[Account] = ()
) -> pd.DataFrame:
    """One row per transaction with the account name resolved."""
    names = {a.id: a.name for a in accounts}
    rows = [
        {
            **asdict(t),
            "account": names.get(t.account_id, ""),
            "to_account": names.get(t.to_account_id, "") if t.to_account_id else "",
        }
        for t in trans
    ]
    columns = list(Transaction.__dataclass_fields__) + ["account", "to_account"]
    df = pd.DataFrame(rows, columns=columns)
    df["date"] = pd.to_datetime(df["date"], errors="coerce")
    return df


def monthly_totals(trans: Iterable[Transaction]) -> pd.DataFrame:
    """Income and expense per calendar month; transfers are left out."""
    df = transactions_frame(trans)
    df = df[df["type"].isin(["income", "expense"]) & df["date"].notna()]
    if df.empty:
        return pd.DataFrame(columns=["month", "income", "expense", "net"])

    df = df.assign(
        month=df["date"].dt.to_period("M").astype(str),
        income=np.where(df["type"] == "income", df["amount"], 0.0),
        expense=np.where(df["type"] == "expense", -df["amount"], 0.0),
    )
    out = df.groupby("month", as_index=False)[["income", "expense"]].sum()
    out["net"] = out["income"] - out["expense"]
    return out.sort_values("month").reset_index(drop=True)


def category_totals(
    trans: Iterable[Transaction], kind: str = "expense", by: str = "category"
) -> pd.DataFrame:
    """Absolute totals of one entry type grouped by category or subcategory."""
    df = transactions_frame(trans)
    df = df[df["type"] == kind]
    if df.empty:
        return pd.DataFrame(columns=[by, "amount"])
    out = (
        df.assign(amount=df["amount"].abs(), **{by: df[by].fillna("-")})
        .groupby(by, as_index=False)["amount"].sum()
        .sort_values("amount", ascending=False)
    )
    return out.reset_index(drop=True)
