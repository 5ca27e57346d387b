"""Commit layer between the pure ledger functions and the row store.

Every mutation follows the same steps: take a snapshot from the store, run
a pure ledger function on it, diff the result against the snapshot, write
the difference and publish events. If a write fails, the rows already
written are restored from the snapshot before the failure is reported.
"""
import logging
import math
from dataclasses import replace
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Tuple

from ledger import store as tables
from ledger.config import settings
from ledger.domain import (
    Account,
    Debt,
    FailureKind,
    LedgerFailure,
    SavingsGoal,
    Transaction,
    TransferRequest,
    TransferResult,
    account_from_record,
    debt_from_record,
    goal_from_record,
    normalize_account_type,
    to_record,
    transaction_from_record,
)
from ledger.events import (
    BALANCE_ALERT,
    TRANSACTION_ADDED,
    TRANSACTION_REMOVED,
    TRANSFER_COMPLETED,
    EventBus,
    event_bus,
)
from ledger.exceptions import MalformedRecordError, StoreError
from ledger.functional import Either, Right, fail, validate_amount
from ledger.store import JsonStore
from ledger.transforms import (
    Accounts,
    LedgerState,
    Transactions,
    add_transaction,
    delete_transaction,
    edit_transaction,
    toggle_struck,
)
from ledger.transfer import delete_transfer, edit_transfer, new_id, process_transfer

logger = logging.getLogger(__name__)


class LedgerService:
    """Facade the dashboard talks to.

    store: row store with select/insert/update/delete
    bus: event bus receiving TRANSACTION_ADDED, TRANSACTION_REMOVED,
        TRANSFER_COMPLETED and BALANCE_ALERT
    """

    def __init__(
        self,
        store: JsonStore,
        bus: EventBus = event_bus,
        allow_overdraft: Optional[bool] = None,
        low_balance_threshold: Optional[float] = None,
        id_factory: Callable[[], str] = new_id,
        clock: Callable[[], date] = date.today,
    ):
        self.store = store
        self.bus = bus
        self.allow_overdraft = settings.ALLOW_OVERDRAFT if allow_overdraft is None else allow_overdraft
        self.low_balance_threshold = (
            settings.LOW_BALANCE_THRESHOLD if low_balance_threshold is None else low_balance_threshold
        )
        self.id_factory = id_factory
        self.clock = clock
        self.alerts: List[dict] = []

    # reads

    def accounts(self) -> Accounts:
        return tuple(account_from_record(r) for r in self.store.select(tables.PLATFORMS, order_by="name"))

    def transactions(self) -> Transactions:
        rows = self.store.select(tables.TRANSACTIONS, order_by="date", descending=True)
        return tuple(transaction_from_record(r) for r in rows)

    def debts(self) -> Tuple[Debt, ...]:
        return tuple(debt_from_record(r) for r in self.store.select(tables.DEBTS, order_by="dueDate"))

    def goals(self) -> Tuple[SavingsGoal, ...]:
        return tuple(goal_from_record(r) for r in self.store.select(tables.GOALS, order_by="deadline"))

    def snapshot(self) -> LedgerState:
        return self.accounts(), self.transactions()

    # ledger mutations

    def transfer(self, request: TransferRequest) -> TransferResult:
        accounts, transactions = self.snapshot()
        result = process_transfer(
            request,
            accounts,
            transactions,
            allow_overdraft=self.allow_overdraft,
            id_factory=self.id_factory,
            today=self.clock().isoformat(),
        )
        if not result.success:
            return result

        committed = self._commit(
            (accounts, transactions),
            (result.updated_accounts, transactions + result.transactions),
            TRANSFER_COMPLETED,
        )
        if committed.is_left():
            return TransferResult.failed(committed.get_error())
        return result

    def record(self, t: Transaction) -> Either[LedgerFailure, LedgerState]:
        """Store a simple income, expense or debt entry."""
        if t.type == "transfer":
            return fail(FailureKind.INVALID_REQUEST, "Use transfer() for transfers")
        before = self.snapshot()
        return add_transaction(*before, t, allow_overdraft=self.allow_overdraft).bind(
            lambda after: self._commit(before, after, TRANSACTION_ADDED)
        )

    def edit(self, t: Transaction) -> Either[LedgerFailure, LedgerState]:
        before = self.snapshot()
        return edit_transaction(*before, t, allow_overdraft=self.allow_overdraft).bind(
            lambda after: self._commit(before, after, TRANSACTION_ADDED)
        )

    def edit_transfer(self, group: str, **changes) -> Either[LedgerFailure, LedgerState]:
        before = self.snapshot()
        return edit_transfer(*before, group, allow_overdraft=self.allow_overdraft, **changes).bind(
            lambda after: self._commit(before, after, TRANSFER_COMPLETED)
        )

    def remove(self, tid: str) -> Either[LedgerFailure, LedgerState]:
        before = self.snapshot()
        return delete_transaction(*before, tid).bind(
            lambda after: self._commit(before, after, TRANSACTION_REMOVED)
        )

    def remove_transfer(self, group: str) -> Either[LedgerFailure, LedgerState]:
        before = self.snapshot()
        return delete_transfer(*before, group).bind(
            lambda after: self._commit(before, after, TRANSACTION_REMOVED)
        )

    def toggle_struck(self, tid: str) -> Either[LedgerFailure, LedgerState]:
        accounts, transactions = before = self.snapshot()
        if not any(t.id == tid for t in transactions):
            return fail(FailureKind.TRANSACTION_NOT_FOUND, f"Transaction with ID {tid} does not exist")
        return self._commit(before, (accounts, toggle_struck(transactions, tid)), None)

    def _commit(
        self, before: LedgerState, after: LedgerState, event: Optional[str]
    ) -> Either[LedgerFailure, LedgerState]:
        old_accounts = {a.id: a for a in before[0]}
        old_trans = {t.id: t for t in before[1]}
        new_trans = {t.id: t for t in after[1]}
        undo: List[Callable[[], object]] = []

        try:
            for tid, t in new_trans.items():
                if tid not in old_trans:
                    self.store.insert(tables.TRANSACTIONS, to_record(t))
                    undo.append(lambda tid=tid: self.store.delete(tables.TRANSACTIONS, tid))
                elif t != old_trans[tid]:
                    self.store.update(tables.TRANSACTIONS, tid, to_record(t, keep_none=True))
                    old = to_record(old_trans[tid], keep_none=True)
                    undo.append(lambda tid=tid, old=old: self.store.update(tables.TRANSACTIONS, tid, old))
            for tid, t in old_trans.items():
                if tid not in new_trans:
                    self.store.delete(tables.TRANSACTIONS, tid)
                    undo.append(lambda t=t: self.store.insert(tables.TRANSACTIONS, to_record(t)))
            for a in after[0]:
                old = old_accounts.get(a.id)
                if old is not None and old.balance != a.balance:
                    self.store.update(tables.PLATFORMS, a.id, {"balance": a.balance})
                    undo.append(
                        lambda aid=a.id, bal=old.balance: self.store.update(tables.PLATFORMS, aid, {"balance": bal})
                    )
        except StoreError as e:
            logger.error("Commit failed on %s/%s: %s; rolling back %d write(s)", e.table, e.row_id, e, len(undo))
            self._rollback(undo)
            return fail(FailureKind.PERSISTENCE_ERROR, f"Could not save changes: {e}", table=e.table)

        deltas = {
            a.id: a.balance - old_accounts[a.id].balance
            for a in after[0]
            if a.id in old_accounts and a.balance != old_accounts[a.id].balance
        }
        if event:
            self.bus.publish(event, {"deltas": deltas})
        self._check_balances(after[0], deltas)
        return Right(after)

    def _rollback(self, undo: List[Callable[[], object]]) -> None:
        for step in reversed(undo):
            try:
                step()
            except StoreError as e:
                # keep undoing the rest; the store is left as close to the snapshot as possible
                logger.error("Rollback step failed: %s", e)

    def _check_balances(self, accounts: Accounts, deltas: Dict[str, float]) -> None:
        for a in accounts:
            if a.id not in deltas:
                continue
            payload = {
                "account_id": a.id,
                "account_name": a.name,
                "balance": a.balance,
                "threshold": self.low_balance_threshold,
            }
            for result in self.bus.publish(BALANCE_ALERT, payload):
                if result.get("alert"):
                    logger.warning(result["alert"])
                    self.alerts.append({**result, "ts": datetime.now().strftime("%H:%M:%S")})

    # accounts

    def add_account(
        self,
        name: str,
        type: str,
        balance: float = 0,
        is_savings: bool = False,
        color: str = "bg-chart-1",
    ) -> Either[LedgerFailure, Account]:
        """Create an account; ``balance`` is its opening balance."""
        if not name.strip():
            return fail(FailureKind.INVALID_REQUEST, "Account name is required")
        try:
            kind = normalize_account_type(type)
        except MalformedRecordError as e:
            return fail(FailureKind.INVALID_REQUEST, str(e), type=type)
        try:
            opening = float(balance)
        except (TypeError, ValueError):
            opening = math.nan
        if isinstance(balance, bool) or not math.isfinite(opening):
            return fail(FailureKind.INVALID_AMOUNT, f"Invalid opening balance: {balance!r}")
        account = Account(
            id=self.id_factory(),
            name=name.strip(),
            type=kind,
            balance=opening,
            is_savings=is_savings,
            color=color,
        )
        return self._write(lambda: self.store.insert(tables.PLATFORMS, to_record(account))).map(
            account_from_record
        )

    def update_account(self, account_id: str, **changes) -> Either[LedgerFailure, Account]:
        """Change display fields of an account.

        The balance only moves through ledger entries, so it cannot be
        changed here.
        """
        allowed = {"name", "type", "is_savings", "color"}
        unknown = set(changes) - allowed
        if unknown:
            return fail(
                FailureKind.INVALID_REQUEST,
                f"Cannot change {', '.join(sorted(unknown))} on an account",
                fields=sorted(unknown),
            )
        current = next((a for a in self.accounts() if a.id == account_id), None)
        if current is None:
            return fail(FailureKind.ACCOUNT_NOT_FOUND, f"Account with ID {account_id} does not exist")
        if "name" in changes:
            if not str(changes["name"]).strip():
                return fail(FailureKind.INVALID_REQUEST, "Account name is required")
            changes["name"] = str(changes["name"]).strip()
        try:
            if "type" in changes:
                changes["type"] = normalize_account_type(changes["type"])
        except MalformedRecordError as e:
            return fail(FailureKind.INVALID_REQUEST, str(e))
        updated = replace(current, **changes)
        return self._write(lambda: self.store.update(tables.PLATFORMS, account_id, to_record(updated))).map(
            account_from_record
        )

    def remove_account(self, account_id: str) -> Either[LedgerFailure, bool]:
        accounts, transactions = self.snapshot()
        if not any(a.id == account_id for a in accounts):
            return fail(FailureKind.ACCOUNT_NOT_FOUND, f"Account with ID {account_id} does not exist")
        used = [t.id for t in transactions if account_id in (t.account_id, t.to_account_id)]
        if used:
            return fail(
                FailureKind.ACCOUNT_IN_USE,
                f"Account is referenced by {len(used)} transaction(s); delete them first",
                account_id=account_id,
                transactions=used,
            )
        return self._write(lambda: self.store.delete(tables.PLATFORMS, account_id))

    # debts and goals

    def save_debt(self, debt: Debt) -> Either[LedgerFailure, Debt]:
        exists = any(d.id == debt.id for d in self.debts())
        if not exists and debt.created_at is None:
            debt = replace(debt, created_at=datetime.now().isoformat(timespec="seconds"))
        record = to_record(debt, keep_none=exists)
        if exists:
            write = lambda: self.store.update(tables.DEBTS, debt.id, record)
        else:
            write = lambda: self.store.insert(tables.DEBTS, record)
        return self._write(write).map(debt_from_record)

    def pay_debt(self, debt_id: str, amount) -> Either[LedgerFailure, Debt]:
        """Reduce what is left on a debt.

        Debts are tracked beside the ledger: paying one does not debit
        any account.
        """
        debt = next((d for d in self.debts() if d.id == debt_id), None)
        if debt is None:
            return fail(FailureKind.RECORD_NOT_FOUND, f"Debt with ID {debt_id} does not exist", debt_id=debt_id)

        def settle(value: float) -> Either[LedgerFailure, Debt]:
            remaining = max(0.0, debt.remaining_amount - value)
            return self.save_debt(replace(debt, remaining_amount=remaining, is_active=remaining > 0))

        return validate_amount(amount).bind(settle)

    def remove_debt(self, debt_id: str) -> Either[LedgerFailure, bool]:
        if not any(d.id == debt_id for d in self.debts()):
            return fail(FailureKind.RECORD_NOT_FOUND, f"Debt with ID {debt_id} does not exist", debt_id=debt_id)
        return self._write(lambda: self.store.delete(tables.DEBTS, debt_id))

    def save_goal(self, goal: SavingsGoal) -> Either[LedgerFailure, SavingsGoal]:
        if validate_amount(goal.target_amount).is_left():
            return fail(FailureKind.INVALID_AMOUNT, "Goal target must be a positive number")
        exists = any(g.id == goal.id for g in self.goals())
        if not exists and goal.created_at is None:
            goal = replace(goal, created_at=datetime.now().isoformat(timespec="seconds"))
        record = to_record(goal, keep_none=exists)
        if exists:
            write = lambda: self.store.update(tables.GOALS, goal.id, record)
        else:
            write = lambda: self.store.insert(tables.GOALS, record)
        return self._write(write).map(goal_from_record)

    def remove_goal(self, goal_id: str) -> Either[LedgerFailure, bool]:
        if not any(g.id == goal_id for g in self.goals()):
            return fail(FailureKind.RECORD_NOT_FOUND, f"Goal with ID {goal_id} does not exist", goal_id=goal_id)
        return self._write(lambda: self.store.delete(tables.GOALS, goal_id))

    def _write(self, op: Callable[[], object]) -> Either[LedgerFailure, object]:
        try:
            return Right(op())
        except StoreError as e:
            logger.error("Store write failed: %s", e)
            return fail(FailureKind.PERSISTENCE_ERROR, f"Could not save changes: {e}", table=e.table)
