import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import logging
from dataclasses import replace
from datetime import date

import streamlit as st
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from ledger.analytics import (
    PERIODS,
    account_stats,
    balance_summary,
    category_totals,
    debt_summary,
    format_compact,
    format_currency,
    goal_progress,
    monthly_totals,
    period_summary,
    transactions_frame,
)
from ledger.config import settings
from ledger.domain import Debt, SavingsGoal, TRANSFER_CATEGORY
from ledger.filters import (
    all_of,
    by_account,
    by_category,
    by_date_range,
    by_search,
    by_type,
    paginate,
    sort_transactions,
)
from ledger.functional import parse_entry_edit, parse_entry_form, parse_transfer_request, validate_amount
from ledger.lazy import iter_transactions, lazy_top_categories
from ledger.services import LedgerService
from ledger.store import JsonStore
from ledger.transfer import new_id

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

st.set_page_config(page_title=settings.PROJECT_NAME, layout="wide")

CATEGORIES = {
    "Pemasukan": ("income", ["Gaji", "Bonus", "Freelance", "Investasi", "Lainnya"]),
    "Pengeluaran": ("expense", ["Makanan", "Belanja", "Transportasi", "Tagihan", "Hiburan", "Kesehatan", "Lainnya"]),
    TRANSFER_CATEGORY: ("transfer", ["Top Up", "Tabungan", "Tarik Tunai", "Lainnya"]),
    "Hutang": ("debt", ["Pinjaman", "Kartu Kredit", "Lainnya"]),
}
TYPE_LABELS = {"income": "Income", "expense": "Expense", "transfer": "Transfer", "debt": "Debt"}


def money(amount: float) -> str:
    return format_currency(amount, settings.CURRENCY_SYMBOL)


if "service" not in st.session_state:
    store = JsonStore(settings.DATA_PATH, seed=settings.SEED_PATH)
    st.session_state.service = LedgerService(store)

service: LedgerService = st.session_state.service
accounts, transactions = service.snapshot()
account_names = {a.id: a.name for a in accounts}

menu = st.sidebar.radio(
    "Menu",
    ["🏠 Dashboard", "🧾 Transactions", "💳 Platforms", "📉 Debts", "🎯 Goals", "📊 Analytics"]
)

if service.alerts:
    with st.sidebar.expander(f"⚠️ Alerts ({len(service.alerts)})"):
        for alert in reversed(service.alerts[-10:]):
            st.warning(f"[{alert['ts']}] {alert['alert']}")
        if st.button("Clear alerts"):
            service.alerts.clear()
            st.rerun()

if menu == "🏠 Dashboard":
    st.title("🏠 Dashboard")
    summary = balance_summary(accounts)
    period = st.selectbox("Period", PERIODS, index=PERIODS.index("monthly"))
    ps = period_summary(transactions, period, date.today(), settings.PAYROLL_DAY)

    k1, k2, k3, k4 = st.columns(4)
    k1.metric("Daily balance", money(summary.daily))
    k2.metric("Savings", money(summary.savings))
    k3.metric(f"Income · {ps.label}", money(ps.income), f"{ps.income_change:+.1f}%")
    k4.metric(f"Expense · {ps.label}", money(ps.expense), f"{ps.expense_change:+.1f}%", delta_color="inverse")

    st.subheader("➕ New transaction")
    category = st.selectbox("Category", list(CATEGORIES))
    kind, subcategories = CATEGORIES[category]
    with st.form("entry_form", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            entry_date = st.date_input("Date", value=date.today())
            amount = st.text_input("Amount", placeholder="150000")
            subcategory = st.selectbox("Subcategory", subcategories)
        with col2:
            from_label = "From account" if kind == "transfer" else "Account"
            account_id = st.selectbox(from_label, list(account_names), format_func=account_names.get)
            to_account_id = None
            if kind == "transfer":
                to_account_id = st.selectbox(
                    "To account", list(account_names), format_func=account_names.get, key="to_account"
                )
            description = st.text_input("Description")
        submitted = st.form_submit_button("Save")

    if submitted:
        form = {
            "date": entry_date.isoformat(),
            "amount": amount,
            "type": kind,
            "category": category,
            "subcategory": subcategory,
            "accountId": account_id,
            "toAccountId": to_account_id,
            "description": description,
        }
        if kind == "transfer":
            parsed = parse_transfer_request(form)
            if parsed.is_left():
                st.error(parsed.get_error().message)
            else:
                result = service.transfer(parsed.unwrap())
                if result.success:
                    st.success(result.message)
                    st.rerun()
                else:
                    st.error(result.message)
        else:
            saved = parse_entry_form(form, new_id).bind(service.record)
            if saved.is_left():
                st.error(saved.get_error().message)
            else:
                st.success("Transaction saved")
                st.rerun()

    st.subheader("Account balances")
    fig_bal = px.bar(
        x=[a.name for a in accounts],
        y=[a.balance for a in accounts],
        labels={"x": "Account", "y": f"Balance ({settings.CURRENCY})"},
        template="plotly_dark",
    )
    st.plotly_chart(fig_bal, use_container_width=True)

    st.subheader("Recent transactions")
    recent = transactions_frame(sort_transactions(transactions)[:5], accounts)
    if recent.empty:
        st.info("No transactions yet.")
    else:
        st.table(
            recent.assign(
                date=recent["date"].dt.strftime("%Y-%m-%d"),
                amount=recent["amount"].map(money),
            )[["date", "description", "category", "account", "to_account", "amount"]]
        )

elif menu == "🧾 Transactions":
    st.title("🧾 Transaction history")

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        search = st.text_input("Search description")
    with col2:
        acc_filter = st.selectbox("Account", ["all"] + list(account_names),
                                  format_func=lambda k: "All" if k == "all" else account_names[k])
    with col3:
        cat_filter = st.selectbox("Category", ["all"] + list(CATEGORIES))
    with col4:
        type_filter = st.selectbox("Type", ["all"] + list(TYPE_LABELS),
                                   format_func=lambda k: "All" if k == "all" else TYPE_LABELS[k])
    col5, col6, col7, col8 = st.columns(4)
    with col5:
        start = st.date_input("From", value=None)
    with col6:
        end = st.date_input("To", value=None)
    with col7:
        sort_key = st.selectbox("Sort by", ["date", "amount", "description"])
    with col8:
        descending = st.radio("Order", ["desc", "asc"], horizontal=True) == "desc"

    preds = [by_date_range(start.isoformat() if start else None, end.isoformat() if end else None)]
    if search:
        preds.append(by_search(search))
    if acc_filter != "all":
        preds.append(by_account(acc_filter))
    if cat_filter != "all":
        preds.append(by_category(cat_filter))
    if type_filter != "all":
        preds.append(by_type(type_filter))

    filtered = sort_transactions(
        tuple(iter_transactions(transactions, all_of(*preds))), sort_key, descending
    )

    page_sizes = sorted({settings.PAGE_SIZE, 10, 25, 50})
    per_page = st.selectbox("Rows per page", page_sizes, index=page_sizes.index(settings.PAGE_SIZE))
    page_no = st.number_input("Page", min_value=1, value=1, step=1)
    page = paginate(filtered, int(page_no), per_page)
    st.caption(f"{page.total} transaction(s) · page {page.page} of {page.total_pages}")

    for t in page.items:
        c1, c2, c3, c4, c5 = st.columns([2, 4, 2, 1, 1])
        label = f"~~{t.description}~~" if t.struck else t.description
        c1.write(t.date)
        route = account_names.get(t.account_id, t.account_id)
        if t.to_account_id:
            route += f" → {account_names.get(t.to_account_id, t.to_account_id)}"
        c2.markdown(f"{label}  \n{t.category}{' · ' + t.subcategory if t.subcategory else ''} · {route}")
        c3.write(money(t.amount))
        if c4.button("✓", key=f"strike_{t.id}", help="Mark as settled"):
            service.toggle_struck(t.id)
            st.rerun()
        if c5.button("🗑", key=f"del_{t.id}", help="Delete (both legs for transfers)"):
            removed = service.remove(t.id)
            if removed.is_left():
                st.error(removed.get_error().message)
            else:
                st.rerun()

    st.divider()
    st.subheader("Edit transfer amount")
    groups = sorted({t.transfer_group for t in transactions if t.transfer_group})
    if groups:
        with st.form("edit_transfer"):
            group = st.selectbox(
                "Transfer",
                groups,
                format_func=lambda g: next(
                    f"{t.date} {t.description} ({money(abs(t.amount))})"
                    for t in transactions if t.transfer_group == g and t.amount < 0
                ),
            )
            new_amount = st.text_input("New amount")
            if st.form_submit_button("Update both legs"):
                edited = validate_amount(new_amount).bind(
                    lambda value: service.edit_transfer(group, amount=value)
                )
                if edited.is_left():
                    st.error(edited.get_error().message)
                else:
                    st.success("Transfer updated")
                    st.rerun()
    else:
        st.info("No transfers recorded.")

    st.divider()
    st.subheader("Edit entry")
    entries = [t for t in sort_transactions(transactions) if not t.transfer_group and t.type != "transfer"]
    if entries:
        target = st.selectbox(
            "Entry",
            entries,
            format_func=lambda t: f"{t.date} {t.description} ({money(t.amount)})",
        )
        entry_category = next((c for c, (k, _) in CATEGORIES.items() if k == target.type), target.category)
        entry_subs = CATEGORIES.get(entry_category, (target.type, []))[1]
        with st.form(f"edit_entry_{target.id}"):
            col1, col2 = st.columns(2)
            with col1:
                edit_date = st.date_input("Date", value=date.fromisoformat(target.date[:10]))
                edit_amount = st.text_input("Amount", value=f"{abs(target.amount):.0f}")
                edit_sub = st.selectbox(
                    "Subcategory",
                    entry_subs,
                    index=entry_subs.index(target.subcategory) if target.subcategory in entry_subs else 0,
                )
            with col2:
                ids = list(account_names)
                edit_account = st.selectbox(
                    "Account",
                    ids,
                    index=ids.index(target.account_id) if target.account_id in ids else 0,
                    format_func=account_names.get,
                )
                edit_description = st.text_input("Description", value=target.description)
            if st.form_submit_button("Update entry"):
                edited = parse_entry_edit(
                    {
                        "date": edit_date.isoformat(),
                        "amount": edit_amount,
                        "type": target.type,
                        "category": target.category,
                        "subcategory": edit_sub,
                        "accountId": edit_account,
                        "description": edit_description,
                    },
                    target,
                ).bind(service.edit)
                if edited.is_left():
                    st.error(edited.get_error().message)
                else:
                    st.success("Entry updated")
                    st.rerun()

    export = transactions_frame(filtered, accounts)
    if not export.empty:
        export["date"] = export["date"].dt.strftime("%Y-%m-%d")
        export["status"] = export["struck"].map({True: "Settled", False: "Active"})
        csv = export[
            ["date", "description", "category", "subcategory", "account", "type", "amount", "status"]
        ].to_csv(index=False)
        st.download_button(
            "⬇ Download CSV",
            csv,
            file_name=f"transactions_{date.today().isoformat()}.csv",
            mime="text/csv",
        )

elif menu == "💳 Platforms":
    st.title("💳 Platforms")
    summary = balance_summary(accounts)
    k1, k2, k3 = st.columns(3)
    k1.metric("Total balance", money(summary.total))
    k2.metric("Accounts", len(accounts))
    k3.metric("Savings accounts", sum(1 for a in accounts if a.is_savings))

    with st.expander("➕ Add account"):
        with st.form("add_account", clear_on_submit=True):
            name = st.text_input("Name")
            kind = st.selectbox("Type", ["bank", "ewallet"])
            opening = st.number_input("Opening balance", value=0.0, step=10000.0)
            is_savings = st.checkbox("Savings account")
            color = st.selectbox("Color", [f"bg-chart-{i}" for i in range(1, 6)])
            if st.form_submit_button("Add"):
                added = service.add_account(name, kind, opening, is_savings, color)
                if added.is_left():
                    st.error(added.get_error().message)
                else:
                    st.rerun()

    for a in accounts:
        stats = account_stats(transactions, a.id)
        with st.container(border=True):
            c1, c2, c3 = st.columns([3, 3, 2])
            c1.markdown(f"**{a.name}** · {a.type}{' · savings' if a.is_savings else ''}")
            c1.metric("Balance", money(a.balance))
            c2.write(f"In: {money(stats.income)}")
            c2.write(f"Out: {money(stats.expense)}")
            c2.caption(f"{stats.total} transaction(s), {stats.transfers} transfer leg(s)")
            with c3:
                if st.button("Delete", key=f"del_acc_{a.id}"):
                    removed = service.remove_account(a.id)
                    if removed.is_left():
                        st.error(removed.get_error().message)
                    else:
                        st.rerun()
            with st.expander("✏️ Edit"):
                with st.form(f"edit_acc_{a.id}"):
                    new_name = st.text_input("Name", value=a.name)
                    new_type = st.selectbox("Type", ["bank", "ewallet"], index=["bank", "ewallet"].index(a.type))
                    colors = [f"bg-chart-{i}" for i in range(1, 6)]
                    new_color = st.selectbox("Color", colors, index=colors.index(a.color) if a.color in colors else 0)
                    new_savings = st.checkbox("Savings account", value=a.is_savings)
                    if st.form_submit_button("Save"):
                        updated = service.update_account(
                            a.id, name=new_name, type=new_type, color=new_color, is_savings=new_savings
                        )
                        if updated.is_left():
                            st.error(updated.get_error().message)
                        else:
                            st.rerun()

elif menu == "📉 Debts":
    st.title("📉 Debts")
    debts = service.debts()
    ds = debt_summary(debts)
    k1, k2, k3 = st.columns(3)
    k1.metric("Remaining", format_compact(ds.remaining), money(ds.remaining), delta_color="off")
    k2.metric("Paid", format_compact(ds.paid), money(ds.paid), delta_color="off")
    k3.metric("Progress", f"{ds.progress:.1f}%")
    st.progress(min(ds.progress, 100) / 100)

    with st.expander("➕ Add debt"):
        with st.form("add_debt", clear_on_submit=True):
            name = st.text_input("Name")
            total = st.number_input("Total amount", min_value=0.0, step=100000.0)
            remaining = st.number_input("Remaining amount", min_value=0.0, step=100000.0)
            rate = st.number_input("Interest rate (%)", min_value=0.0, step=0.5)
            minimum = st.number_input("Minimum payment", min_value=0.0, step=50000.0)
            due = st.date_input("Due date", value=None)
            description = st.text_input("Description")
            if st.form_submit_button("Save"):
                saved = service.save_debt(Debt(
                    id=new_id(),
                    name=name,
                    total_amount=total,
                    remaining_amount=remaining,
                    interest_rate=rate or None,
                    minimum_payment=minimum or None,
                    due_date=due.isoformat() if due else None,
                    description=description or None,
                ))
                if saved.is_left():
                    st.error(saved.get_error().message)
                else:
                    st.rerun()

    for d in debts:
        with st.container(border=True):
            c1, c2, c3 = st.columns([3, 2, 2])
            c1.markdown(f"**{d.name}**{'' if d.is_active else ' · paid off'}")
            if d.description:
                c1.caption(d.description)
            c2.write(f"{money(d.remaining_amount)} / {money(d.total_amount)}")
            if d.due_date:
                c2.caption(f"Due {d.due_date}")
            with c3:
                payment = st.text_input("Payment", key=f"pay_{d.id}")
                if st.button("Pay", key=f"pay_btn_{d.id}"):
                    paid = service.pay_debt(d.id, payment)
                    if paid.is_left():
                        st.error(paid.get_error().message)
                    else:
                        st.rerun()
                if st.button("Delete", key=f"del_debt_{d.id}"):
                    service.remove_debt(d.id)
                    st.rerun()
            with st.expander("✏️ Edit"):
                with st.form(f"edit_debt_{d.id}"):
                    name = st.text_input("Name", value=d.name)
                    total = st.number_input("Total amount", min_value=0.0, value=float(d.total_amount), step=100000.0)
                    remaining = st.number_input(
                        "Remaining amount", min_value=0.0, value=float(d.remaining_amount), step=100000.0
                    )
                    rate = st.number_input("Interest rate (%)", min_value=0.0, value=float(d.interest_rate or 0), step=0.5)
                    minimum = st.number_input(
                        "Minimum payment", min_value=0.0, value=float(d.minimum_payment or 0), step=50000.0
                    )
                    due = st.date_input("Due date", value=date.fromisoformat(d.due_date) if d.due_date else None)
                    description = st.text_input("Description", value=d.description or "")
                    if st.form_submit_button("Save"):
                        saved = service.save_debt(replace(
                            d,
                            name=name,
                            total_amount=total,
                            remaining_amount=remaining,
                            interest_rate=rate or None,
                            minimum_payment=minimum or None,
                            due_date=due.isoformat() if due else None,
                            description=description or None,
                            is_active=remaining > 0,
                        ))
                        if saved.is_left():
                            st.error(saved.get_error().message)
                        else:
                            st.rerun()

elif menu == "🎯 Goals":
    st.title("🎯 Savings goals")
    summary = balance_summary(accounts)
    st.metric("Savings balance", money(summary.savings))

    with st.expander("➕ Add goal"):
        with st.form("add_goal", clear_on_submit=True):
            name = st.text_input("Name")
            target = st.number_input("Target amount", min_value=0.0, step=1000000.0)
            deadline = st.date_input("Deadline", value=None)
            description = st.text_input("Description")
            if st.form_submit_button("Save"):
                saved = service.save_goal(SavingsGoal(
                    id=new_id(),
                    name=name,
                    target_amount=target,
                    deadline=deadline.isoformat() if deadline else None,
                    description=description or None,
                ))
                if saved.is_left():
                    st.error(saved.get_error().message)
                else:
                    st.rerun()

    for g in service.goals():
        progress = goal_progress(g, accounts)
        with st.container(border=True):
            c1, c2 = st.columns([4, 1])
            c1.markdown(f"**{g.name}** · target {money(g.target_amount)}"
                        f"{' · by ' + g.deadline if g.deadline else ''}")
            c1.progress(progress / 100, text=f"{progress:.1f}%")
            if c2.button("Delete", key=f"del_goal_{g.id}"):
                service.remove_goal(g.id)
                st.rerun()
            with st.expander("✏️ Edit"):
                with st.form(f"edit_goal_{g.id}"):
                    name = st.text_input("Name", value=g.name)
                    target = st.number_input("Target amount", min_value=0.0, value=float(g.target_amount), step=1000000.0)
                    deadline = st.date_input("Deadline", value=date.fromisoformat(g.deadline) if g.deadline else None)
                    description = st.text_input("Description", value=g.description or "")
                    if st.form_submit_button("Save"):
                        saved = service.save_goal(replace(
                            g,
                            name=name,
                            target_amount=target,
                            deadline=deadline.isoformat() if deadline else None,
                            description=description or None,
                        ))
                        if saved.is_left():
                            st.error(saved.get_error().message)
                        else:
                            st.rerun()

elif menu == "📊 Analytics":
    st.title("📊 Analytics")

    monthly = monthly_totals(transactions)
    if monthly.empty:
        st.info("No income or expense recorded yet.")
    else:
        fig_ts = go.Figure()
        fig_ts.add_trace(go.Bar(x=monthly["month"], y=monthly["income"], name="Income"))
        fig_ts.add_trace(go.Bar(x=monthly["month"], y=monthly["expense"], name="Expense"))
        fig_ts.add_trace(go.Scatter(x=monthly["month"], y=monthly["net"], mode="lines+markers", name="Net"))
        fig_ts.update_layout(template="plotly_dark", barmode="group", margin=dict(t=30, b=10, l=10, r=10))
        st.plotly_chart(fig_ts, use_container_width=True)

        income_total = monthly["income"].sum()
        saved = income_total - monthly["expense"].sum()
        rate = saved / income_total * 100 if income_total > 0 else 0
        st.metric("Savings rate", f"{rate:.1f}%")

    col_left, col_right = st.columns(2)
    with col_left:
        expense_df = category_totals(transactions, "expense", by="subcategory")
        if not expense_df.empty:
            st.plotly_chart(
                px.pie(expense_df, values="amount", names="subcategory", title="Expenses by subcategory"),
                use_container_width=True,
            )
        else:
            st.info("No expenses to chart.")
    with col_right:
        positive = [a for a in accounts if a.balance > 0]
        if positive:
            st.plotly_chart(
                px.pie(
                    pd.DataFrame({"account": [a.name for a in positive], "balance": [a.balance for a in positive]}),
                    values="balance",
                    names="account",
                    title="Balance distribution",
                ),
                use_container_width=True,
            )

    st.subheader("Top expense categories")
    k = st.number_input("Show top-K:", min_value=1, max_value=20, value=5)
    top = list(lazy_top_categories(iter_transactions(transactions, by_type("expense")), int(k)))
    if top:
        st.table(pd.DataFrame([{"Category": n, "Amount": money(v)} for n, v in top]))
