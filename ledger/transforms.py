import json
import logging
from dataclasses import replace
from functools import reduce
from typing import Tuple

from ledger.domain import (
    Account,
    Debt,
    FailureKind,
    LedgerFailure,
    SavingsGoal,
    Transaction,
    account_from_record,
    debt_from_record,
    goal_from_record,
    transaction_from_record,
)
from ledger.functional import Either, Right, fail, safe_account

logger = logging.getLogger(__name__)

Accounts = Tuple[Account, ...]
Transactions = Tuple[Transaction, ...]
LedgerState = Tuple[Accounts, Transactions]


def load_seed(
    path: str,
) -> Tuple[Accounts, Transactions, Tuple[Debt, ...], Tuple[SavingsGoal, ...]]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    accounts = tuple(account_from_record(a) for a in data.get("platforms", ()))
    transactions = tuple(transaction_from_record(t) for t in data.get("transactions", ()))
    debts = tuple(debt_from_record(d) for d in data.get("debts", ()))
    goals = tuple(goal_from_record(g) for g in data.get("goals", ()))

    logger.debug(
        "Loaded seed %s: %d accounts, %d transactions", path, len(accounts), len(transactions)
    )
    return accounts, transactions, debts, goals


def _shift_balance(accs: Accounts, acc_id: str, delta: float) -> Either[LedgerFailure, Accounts]:
    if safe_account(accs, acc_id).is_none():
        return fail(
            FailureKind.ACCOUNT_NOT_FOUND,
            f"Account with ID {acc_id} does not exist",
            account_id=acc_id,
        )
    return Right(tuple(
        replace(a, balance=a.balance + delta) if a.id == acc_id else a
        for a in accs
    ))


def apply_entry(accs: Accounts, t: Transaction) -> Either[LedgerFailure, Accounts]:
    """Add the transaction's signed amount to its own account."""
    return _shift_balance(accs, t.account_id, t.amount)


def reverse_entry(accs: Accounts, t: Transaction) -> Either[LedgerFailure, Accounts]:
    """Undo apply_entry for the same transaction."""
    return _shift_balance(accs, t.account_id, -t.amount)


def check_funds(
    accs: Accounts, acc_id: str, delta: float, allow_overdraft: bool = False
) -> Either[LedgerFailure, Accounts]:
    """Reject an outflow that would take the account below zero."""
    if allow_overdraft or delta >= 0:
        return Right(accs)
    acc = safe_account(accs, acc_id).get_or_else(None)
    if acc is None:
        return fail(
            FailureKind.ACCOUNT_NOT_FOUND,
            f"Account with ID {acc_id} does not exist",
            account_id=acc_id,
        )
    if acc.balance + delta < 0:
        return fail(
            FailureKind.INSUFFICIENT_FUNDS,
            f"Insufficient balance in {acc.name}: {acc.balance:,.0f} available, {-delta:,.0f} required",
            account_id=acc_id,
            balance=acc.balance,
            required=-delta,
        )
    return Right(accs)


def find_transaction(trans: Transactions, tid: str) -> Either[LedgerFailure, Transaction]:
    for t in trans:
        if t.id == tid:
            return Right(t)
    return fail(
        FailureKind.TRANSACTION_NOT_FOUND,
        f"Transaction with ID {tid} does not exist",
        transaction_id=tid,
    )


def add_transaction(
    accs: Accounts, trans: Transactions, t: Transaction, allow_overdraft: bool = False
) -> Either[LedgerFailure, LedgerState]:
    if any(existing.id == t.id for existing in trans):
        return fail(
            FailureKind.INVALID_REQUEST,
            f"Transaction with ID {t.id} already exists",
            transaction_id=t.id,
        )
    return (
        check_funds(accs, t.account_id, t.amount, allow_overdraft)
        .bind(lambda a: apply_entry(a, t))
        .map(lambda a: (a, trans + (t,)))
    )


def edit_transaction(
    accs: Accounts, trans: Transactions, updated: Transaction, allow_overdraft: bool = False
) -> Either[LedgerFailure, LedgerState]:
    """Replace a stored transaction, moving its balance delta accordingly.

    The old delta is reversed before the new one is applied, so the edit
    may also move the entry to a different account. Transfer legs are
    edited as a pair through ``ledger.transfer.edit_transfer``.
    """
    def swap(old: Transaction) -> Either[LedgerFailure, LedgerState]:
        if old.transfer_group or old.type == "transfer" or updated.type == "transfer":
            return fail(
                FailureKind.INVALID_REQUEST,
                "Transfer entries must be edited as a pair",
                transaction_id=old.id,
            )
        return (
            reverse_entry(accs, old)
            .bind(lambda a: check_funds(a, updated.account_id, updated.amount, allow_overdraft))
            .bind(lambda a: apply_entry(a, updated))
            .map(lambda a: (a, tuple(updated if t.id == old.id else t for t in trans)))
        )

    return find_transaction(trans, updated.id).bind(swap)


def delete_transaction(
    accs: Accounts, trans: Transactions, tid: str
) -> Either[LedgerFailure, LedgerState]:
    """Remove a transaction and reverse its delta.

    Deleting either leg of a transfer removes both legs.
    """
    def remove(target: Transaction) -> Either[LedgerFailure, LedgerState]:
        if target.transfer_group:
            doomed = tuple(t for t in trans if t.transfer_group == target.transfer_group)
        else:
            doomed = (target,)
        reversed_accs = reduce(
            lambda acc, t: acc.bind(lambda a: reverse_entry(a, t)),
            doomed,
            Right(accs),
        )
        doomed_ids = {t.id for t in doomed}
        return reversed_accs.map(
            lambda a: (a, tuple(t for t in trans if t.id not in doomed_ids))
        )

    return find_transaction(trans, tid).bind(remove)


def toggle_struck(trans: Transactions, tid: str) -> Transactions:
    return tuple(replace(t, struck=not t.struck) if t.id == tid else t for t in trans)


def account_balance(trans: Transactions, acc_id: str) -> float:
    return reduce(
        lambda acc, t: acc + t.amount if t.account_id == acc_id else acc, trans, 0
    )


def total_balance(accs: Accounts) -> float:
    return sum(a.balance for a in accs)


def income_transactions(trans: Transactions) -> Transactions:
    return tuple(filter(lambda t: t.type == "income", trans))


def expense_transactions(trans: Transactions) -> Transactions:
    return tuple(filter(lambda t: t.type == "expense", trans))
