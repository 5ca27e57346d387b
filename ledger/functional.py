import math
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date
from typing import Any, Callable, Generic, Mapping, Optional, TypeVar

from ledger.domain import (
    Account,
    FailureKind,
    LedgerFailure,
    Transaction,
    TransferRequest,
    TRANSACTION_TYPES,
)

T = TypeVar('T')
U = TypeVar('U')
E = TypeVar('E')


class Maybe(Generic[T], ABC):

    @abstractmethod
    def map(self, f: Callable[[T], U]) -> 'Maybe[U]':
        pass

    @abstractmethod
    def bind(self, f: Callable[[T], 'Maybe[U]']) -> 'Maybe[U]':
        pass

    @abstractmethod
    def get_or_else(self, default: T) -> T:
        pass

    @abstractmethod
    def is_some(self) -> bool:
        pass

    def is_none(self) -> bool:
        return not self.is_some()


class Some(Maybe[T]):

    def __init__(self, value: T):
        self._value = value

    def map(self, f: Callable[[T], U]) -> 'Maybe[U]':
        return Some(f(self._value))

    def bind(self, f: Callable[[T], 'Maybe[U]']) -> 'Maybe[U]':
        return f(self._value)

    def get_or_else(self, default: T) -> T:
        return self._value

    def is_some(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"Some({self._value!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Some) and self._value == other._value


class Nothing(Maybe[T]):

    def map(self, f: Callable[[T], U]) -> 'Maybe[U]':
        return Nothing()

    def bind(self, f: Callable[[T], 'Maybe[U]']) -> 'Maybe[U]':
        return Nothing()

    def get_or_else(self, default: T) -> T:
        return default

    def is_some(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "Nothing()"

    def __eq__(self, other) -> bool:
        return isinstance(other, Nothing)


class Either(Generic[E, T], ABC):

    @abstractmethod
    def map(self, f: Callable[[T], U]) -> 'Either[E, U]':
        pass

    @abstractmethod
    def bind(self, f: Callable[[T], 'Either[E, U]']) -> 'Either[E, U]':
        pass

    @abstractmethod
    def get_or_else(self, default: T) -> T:
        pass

    @abstractmethod
    def is_right(self) -> bool:
        pass

    @abstractmethod
    def get_error(self) -> E:
        pass

    def is_left(self) -> bool:
        return not self.is_right()

    def unwrap(self) -> T:
        """Return the Right value; raise if this is a Left."""
        if self.is_left():
            raise ValueError(f"unwrap() called on {self!r}")
        return self.get_or_else(None)


class Right(Either[E, T]):

    def __init__(self, value: T):
        self._value = value

    def map(self, f: Callable[[T], U]) -> 'Either[E, U]':
        return Right(f(self._value))

    def bind(self, f: Callable[[T], 'Either[E, U]']) -> 'Either[E, U]':
        return f(self._value)

    def get_or_else(self, default: T) -> T:
        return self._value

    def is_right(self) -> bool:
        return True

    def get_error(self) -> E:
        raise ValueError("Cannot get error from Right")

    def __repr__(self) -> str:
        return f"Right({self._value!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Right) and self._value == other._value


class Left(Either[E, T]):

    def __init__(self, error: E):
        self._error = error

    def map(self, f: Callable[[T], U]) -> 'Either[E, U]':
        return self

    def bind(self, f: Callable[[T], 'Either[E, U]']) -> 'Either[E, U]':
        return self

    def get_or_else(self, default: T) -> T:
        return default

    def is_right(self) -> bool:
        return False

    def get_error(self) -> E:
        return self._error

    def __repr__(self) -> str:
        return f"Left({self._error!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Left) and self._error == other._error


def fail(kind: FailureKind, message: str, **details) -> Left:
    return Left(LedgerFailure(kind=kind, message=message, details=details))


def safe_account(accs: tuple[Account, ...], acc_id: str) -> Maybe[Account]:
    for acc in accs:
        if acc.id == acc_id:
            return Some(acc)
    return Nothing()


def validate_amount(value: Any) -> Either[LedgerFailure, float]:
    """Accept finite, strictly positive numbers (or numeric strings)."""
    if isinstance(value, bool) or value is None:
        return fail(FailureKind.INVALID_AMOUNT, f"Invalid amount: {value!r}", amount=value)
    if isinstance(value, str):
        value = value.strip()
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return fail(FailureKind.INVALID_AMOUNT, f"Invalid amount: {value!r}", amount=value)
    if not math.isfinite(amount) or amount <= 0:
        return fail(
            FailureKind.INVALID_AMOUNT,
            "Amount must be a positive number",
            amount=amount,
        )
    return Right(amount)


def _validate_date(value: Optional[str]) -> Either[LedgerFailure, Optional[str]]:
    if not value:
        return Right(None)
    try:
        return Right(date.fromisoformat(str(value)[:10]).isoformat())
    except ValueError:
        return fail(FailureKind.INVALID_REQUEST, f"Invalid date: {value!r}", date=value)


def _text(form: Mapping[str, Any], *keys: str) -> str:
    for k in keys:
        v = form.get(k)
        if v is not None and str(v).strip():
            return str(v).strip()
    return ""


def parse_transfer_request(form: Mapping[str, Any]) -> Either[LedgerFailure, TransferRequest]:
    """Build a TransferRequest from raw form fields.

    Accepts both the request schema keys (``fromAccountId``) and the entry
    form keys (``accountId``) for the source account.
    """
    from_id = _text(form, "fromAccountId", "accountId")
    to_id = _text(form, "toAccountId")
    if not from_id or not to_id:
        return fail(
            FailureKind.INVALID_REQUEST,
            "Both source and destination accounts are required",
            from_account_id=from_id,
            to_account_id=to_id,
        )

    def build(amount: float) -> Either[LedgerFailure, TransferRequest]:
        return _validate_date(form.get("date")).map(
            lambda d: TransferRequest(
                from_account_id=from_id,
                to_account_id=to_id,
                amount=amount,
                description=_text(form, "description"),
                subcategory=_text(form, "subcategory") or None,
                date=d,
                group_id=_text(form, "groupId") or None,
            )
        )

    return validate_amount(form.get("amount")).bind(build)


def parse_entry_form(
    form: Mapping[str, Any], id_factory: Callable[[], str]
) -> Either[LedgerFailure, Transaction]:
    """Build a simple income/expense/debt entry from raw form fields.

    The stored amount is signed from the entry type: expenses are
    negative, everything else positive.
    """
    kind = _text(form, "type") or "expense"
    if kind not in TRANSACTION_TYPES or kind == "transfer":
        return fail(FailureKind.INVALID_REQUEST, f"Invalid transaction type: {kind!r}", type=kind)
    account_id = _text(form, "accountId")
    if not account_id:
        return fail(FailureKind.INVALID_REQUEST, "Account is required")
    category = _text(form, "category")
    if not category:
        return fail(FailureKind.INVALID_REQUEST, "Category is required")

    def build(amount: float) -> Either[LedgerFailure, Transaction]:
        return _validate_date(form.get("date")).map(
            lambda d: Transaction(
                id=id_factory(),
                date=d or date.today().isoformat(),
                description=_text(form, "description"),
                amount=-amount if kind == "expense" else amount,
                type=kind,
                category=category,
                account_id=account_id,
                subcategory=_text(form, "subcategory") or None,
                receipt_url=_text(form, "receiptUrl") or None,
            )
        )

    return validate_amount(form.get("amount")).bind(build)


def parse_entry_edit(form: Mapping[str, Any], original: Transaction) -> Either[LedgerFailure, Transaction]:
    """Rebuild an existing entry from edited form fields, keeping its id and settled flag."""
    return parse_entry_form(form, lambda: original.id).map(
        lambda t: replace(t, struck=original.struck, receipt_url=t.receipt_url or original.receipt_url)
    )
