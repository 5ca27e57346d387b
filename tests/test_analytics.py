from datetime import date

import pytest

from ledger.analytics import (
    account_stats,
    balance_summary,
    category_totals,
    debt_summary,
    format_compact,
    format_currency,
    goal_progress,
    monthly_totals,
    period_bounds,
    period_summary,
    transactions_frame,
)
from ledger.domain import Account, Debt, SavingsGoal, Transaction

ACCS = (
    Account("bca", "BCA", "bank", 5_000_000.0),
    Account("mandiri", "Mandiri", "bank", 12_000_000.0, is_savings=True),
    Account("gopay", "GoPay", "ewallet", 300_000.0),
)

TRANS = (
    Transaction("t1", "2025-08-10", "Gaji Agustus", 500.0, "income", "Pemasukan", "bca"),
    Transaction("t2", "2025-09-05", "Gaji September", 1_000.0, "income", "Pemasukan", "bca"),
    Transaction("t3", "2025-09-06", "Belanja", -400.0, "expense", "Pengeluaran", "bca", "Belanja"),
    Transaction("t4", "2025-09-07", "Top up", -100.0, "transfer", "Mutasi", "bca",
                to_account_id="gopay", transfer_group="g"),
    Transaction("t5", "2025-09-07", "Top up", 100.0, "transfer", "Mutasi", "gopay", transfer_group="g"),
    Transaction("t6", "2025-09-08", "Kopi", -50.0, "expense", "Pengeluaran", "gopay", "Makanan"),
)


def test_format_currency():
    assert format_currency(1_250_000) == "Rp 1.250.000"
    assert format_currency(-50_000) == "-Rp 50.000"
    assert format_currency(0, "IDR") == "IDR 0"


def test_format_compact():
    assert format_compact(2_500_000) == "2.5M"
    assert format_compact(12_000) == "12K"
    assert format_compact(999) == "999"


def test_balance_summary():
    summary = balance_summary(ACCS)
    assert summary.total == 17_300_000
    assert summary.savings == 12_000_000
    assert summary.daily == 5_300_000


@pytest.mark.parametrize("period, now, expected", [
    ("daily", date(2025, 9, 17), (date(2025, 9, 17), date(2025, 9, 16))),
    # Wednesday; weeks start on Sunday
    ("weekly", date(2025, 9, 17), (date(2025, 9, 14), date(2025, 9, 7))),
    ("weekly", date(2025, 9, 14), (date(2025, 9, 14), date(2025, 9, 7))),
    ("monthly", date(2025, 3, 15), (date(2025, 3, 1), date(2025, 2, 1))),
    ("monthly", date(2025, 1, 15), (date(2025, 1, 1), date(2024, 12, 1))),
    ("yearly", date(2025, 6, 1), (date(2025, 1, 1), date(2024, 1, 1))),
    ("payroll", date(2025, 9, 30), (date(2025, 9, 28), date(2025, 8, 28))),
    ("payroll", date(2025, 9, 10), (date(2025, 8, 28), date(2025, 7, 28))),
    ("payroll", date(2025, 1, 5), (date(2024, 12, 28), date(2024, 11, 28))),
])
def test_period_bounds(period, now, expected):
    assert period_bounds(period, now) == expected


def test_payroll_day_clamps_to_month_length():
    assert period_bounds("payroll", date(2025, 3, 10), payroll_day=31) == (date(2025, 2, 28), date(2025, 1, 31))


def test_unknown_period():
    with pytest.raises(ValueError):
        period_bounds("fortnightly", date(2025, 1, 1))


def test_period_summary_ignores_transfers():
    summary = period_summary(TRANS, "monthly", date(2025, 9, 30))
    assert summary.label == "This month"
    assert (summary.income, summary.expense) == (1_000, 450)
    assert (summary.previous_income, summary.previous_expense) == (500, 0)
    assert summary.income_change == pytest.approx(100.0)
    assert summary.expense_change == 0.0


def test_account_stats():
    bca = account_stats(TRANS, "bca")
    assert (bca.income, bca.expense, bca.transfers, bca.total) == (1_500, 500, 1, 4)
    gopay = account_stats(TRANS, "gopay")
    assert (gopay.income, gopay.expense, gopay.transfers, gopay.total) == (100, 50, 1, 2)


def test_goal_progress_is_capped():
    assert goal_progress(SavingsGoal("g1", "Darurat", 30_000_000), ACCS) == pytest.approx(40.0)
    assert goal_progress(SavingsGoal("g2", "HP", 5_000_000), ACCS) == 100.0


def test_debt_summary():
    summary = debt_summary([Debt("d1", "KPR", 100, 60), Debt("d2", "Kartu", 50, 50)])
    assert (summary.remaining, summary.original, summary.paid) == (110, 150, 40)
    assert summary.progress == pytest.approx(26.6667, rel=1e-4)
    assert debt_summary([]).progress == 0.0


def test_transactions_frame_resolves_names():
    df = transactions_frame(TRANS, ACCS)
    assert len(df) == len(TRANS)
    row = df[df["id"] == "t4"].iloc[0]
    assert (row["account"], row["to_account"]) == ("BCA", "GoPay")
    assert str(df["date"].dtype).startswith("datetime64")


def test_monthly_totals():
    out = monthly_totals(TRANS)
    assert out["month"].tolist() == ["2025-08", "2025-09"]
    assert out["income"].tolist() == [500, 1_000]
    assert out["expense"].tolist() == [0, 450]
    assert out["net"].tolist() == [500, 550]
    assert monthly_totals(()).empty


def test_category_totals():
    by_sub = category_totals(TRANS, "expense", by="subcategory")
    assert by_sub.to_dict("records") == [
        {"subcategory": "Belanja", "amount": 400.0},
        {"subcategory": "Makanan", "amount": 50.0},
    ]
    assert category_totals(TRANS, "income")["amount"].tolist() == [1_500]
    assert category_totals((), "expense").empty
