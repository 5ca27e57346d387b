"""Transfers ("Mutasi") between two accounts.

A transfer is stored as two transactions sharing a ``transfer_group``:
the outgoing leg debits the source account and carries ``to_account_id``,
the incoming leg credits the destination account. Every function here is
pure: it returns new account and transaction tuples and leaves its inputs
untouched, so the caller decides when to commit.
"""
import logging
from dataclasses import replace
from datetime import date
from functools import reduce
from typing import Callable, Optional, Tuple
from uuid import uuid4

from ledger.domain import (
    Account,
    FailureKind,
    LedgerFailure,
    Transaction,
    TransferRequest,
    TransferResult,
    TRANSFER_CATEGORY,
)
from ledger.functional import Either, Right, fail, safe_account, validate_amount
from ledger.transforms import (
    Accounts,
    LedgerState,
    Transactions,
    apply_entry,
    check_funds,
    reverse_entry,
)

logger = logging.getLogger(__name__)


def new_id() -> str:
    return uuid4().hex


def is_incoming_leg(t: Transaction) -> bool:
    return t.type == "transfer" and t.to_account_id is None and t.amount > 0


def _check_shapes(request, accounts, transactions) -> None:
    # Malformed input is a programming error, not a validation outcome.
    if not isinstance(request, TransferRequest):
        raise TypeError(f"expected TransferRequest, got {type(request).__name__}")
    for a in accounts:
        if not isinstance(a, Account):
            raise TypeError(f"accounts must contain Account records, got {type(a).__name__}")
    for t in transactions:
        if not isinstance(t, Transaction):
            raise TypeError(f"transactions must contain Transaction records, got {type(t).__name__}")


def validate_transfer(
    request: TransferRequest,
    accounts: Accounts,
    transactions: Transactions,
    allow_overdraft: bool = False,
) -> Either[LedgerFailure, float]:
    """Run the transfer checks in order and return the validated amount."""
    for acc_id in (request.from_account_id, request.to_account_id):
        if safe_account(accounts, acc_id).is_none():
            return fail(
                FailureKind.ACCOUNT_NOT_FOUND,
                f"Account with ID {acc_id} does not exist",
                account_id=acc_id,
            )

    if request.from_account_id == request.to_account_id:
        return fail(
            FailureKind.SAME_ACCOUNT,
            "Source and destination accounts must be different",
            account_id=request.from_account_id,
        )

    def not_replayed(amount: float) -> Either[LedgerFailure, float]:
        group = request.group_id
        if group and any(t.transfer_group == group for t in transactions):
            return fail(
                FailureKind.DUPLICATE_TRANSFER,
                f"Transfer {group} has already been recorded",
                transfer_group=group,
            )
        return Right(amount)

    return (
        validate_amount(request.amount)
        .bind(lambda amount: check_funds(
            accounts, request.from_account_id, -amount, allow_overdraft
        ).map(lambda _: amount))
        .bind(not_replayed)
    )


def build_legs(
    request: TransferRequest,
    amount: float,
    group: str,
    id_factory: Callable[[], str],
    today: str,
) -> Tuple[Transaction, Transaction]:
    shared = dict(
        date=request.date or today,
        description=request.description,
        type="transfer",
        category=TRANSFER_CATEGORY,
        subcategory=request.subcategory,
        transfer_group=group,
    )
    debit = Transaction(
        id=id_factory(),
        amount=-amount,
        account_id=request.from_account_id,
        to_account_id=request.to_account_id,
        **shared,
    )
    credit = Transaction(
        id=id_factory(),
        amount=amount,
        account_id=request.to_account_id,
        **shared,
    )
    return debit, credit


def _apply_legs(accounts: Accounts, legs) -> Either[LedgerFailure, Accounts]:
    return reduce(lambda acc, t: acc.bind(lambda a: apply_entry(a, t)), legs, Right(accounts))


def process_transfer(
    request: TransferRequest,
    accounts: Accounts,
    transactions: Transactions,
    *,
    allow_overdraft: bool = False,
    id_factory: Callable[[], str] = new_id,
    today: Optional[str] = None,
) -> TransferResult:
    """Validate and execute a transfer.

    On success the result holds the (debit, credit) pair and the full
    accounts tuple with both balances moved; every other account is
    returned unchanged. On failure nothing is produced and the result
    carries the failure kind and a human-readable message.
    """
    accounts = tuple(accounts)
    transactions = tuple(transactions)
    _check_shapes(request, accounts, transactions)

    checked = validate_transfer(request, accounts, transactions, allow_overdraft)
    if checked.is_left():
        failure = checked.get_error()
        logger.info("Transfer rejected (%s): %s", failure.kind.value, failure.message)
        return TransferResult.failed(failure)

    amount = checked.unwrap()
    legs = build_legs(
        request,
        amount,
        request.group_id or id_factory(),
        id_factory,
        today or date.today().isoformat(),
    )
    updated = _apply_legs(accounts, legs).unwrap()

    source = safe_account(accounts, request.from_account_id).get_or_else(None)
    target = safe_account(accounts, request.to_account_id).get_or_else(None)
    message = f"Transferred {amount:,.0f} from {source.name} to {target.name}"
    logger.info("%s (group %s)", message, legs[0].transfer_group)
    return TransferResult(
        success=True,
        message=message,
        transactions=legs,
        updated_accounts=updated,
    )


def transfer_legs(
    transactions: Transactions, group: str
) -> Either[LedgerFailure, Tuple[Transaction, Transaction]]:
    legs = [t for t in transactions if t.transfer_group == group]
    debit = next((t for t in legs if t.amount < 0), None)
    credit = next((t for t in legs if t.amount > 0), None)
    if len(legs) != 2 or debit is None or credit is None:
        return fail(
            FailureKind.TRANSACTION_NOT_FOUND,
            f"Transfer {group} does not have a debit and a credit leg",
            transfer_group=group,
            legs=len(legs),
        )
    return Right((debit, credit))


def _reverse_legs(accounts: Accounts, legs) -> Either[LedgerFailure, Accounts]:
    return reduce(lambda acc, t: acc.bind(lambda a: reverse_entry(a, t)), legs, Right(accounts))


def delete_transfer(
    accounts: Accounts, transactions: Transactions, group: str
) -> Either[LedgerFailure, LedgerState]:
    def remove(legs) -> Either[LedgerFailure, LedgerState]:
        ids = {t.id for t in legs}
        return _reverse_legs(accounts, legs).map(
            lambda a: (a, tuple(t for t in transactions if t.id not in ids))
        )

    return transfer_legs(transactions, group).bind(remove)


def edit_transfer(
    accounts: Accounts,
    transactions: Transactions,
    group: str,
    *,
    amount: Optional[float] = None,
    description: Optional[str] = None,
    subcategory: Optional[str] = None,
    date: Optional[str] = None,
    allow_overdraft: bool = False,
) -> Either[LedgerFailure, LedgerState]:
    """Change both legs of a transfer together.

    Both legs are reversed first, then re-applied with the new values, so
    the destination and source move by the same amount.
    """
    def rewrite(legs) -> Either[LedgerFailure, LedgerState]:
        debit, credit = legs
        new_amount = abs(debit.amount) if amount is None else amount

        def rebuild(value: float) -> Either[LedgerFailure, LedgerState]:
            changes = {}
            if description is not None:
                changes["description"] = description
            if subcategory is not None:
                changes["subcategory"] = subcategory or None
            if date is not None:
                changes["date"] = date
            new_debit = replace(debit, amount=-value, **changes)
            new_credit = replace(credit, amount=value, **changes)
            swapped = {new_debit.id: new_debit, new_credit.id: new_credit}
            return (
                _reverse_legs(accounts, legs)
                .bind(lambda a: check_funds(a, debit.account_id, -value, allow_overdraft))
                .bind(lambda a: _apply_legs(a, (new_debit, new_credit)))
                .map(lambda a: (a, tuple(swapped.get(t.id, t) for t in transactions)))
            )

        return validate_amount(new_amount).bind(rebuild)

    return transfer_legs(transactions, group).bind(rewrite)
