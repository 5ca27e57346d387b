from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from ledger.exceptions import MalformedRecordError

ACCOUNT_TYPES = ("bank", "ewallet")
TRANSACTION_TYPES = ("income", "expense", "transfer", "debt")
TRANSFER_CATEGORY = "Mutasi"


@dataclass(frozen=True)
class Account:
    id: str
    name: str
    type: str        # "bank" or "ewallet"
    balance: float
    is_savings: bool = False
    color: str = "bg-chart-1"


@dataclass(frozen=True)
class Transaction:
    id: str
    date: str            # ISO date, e.g. "2025-09-01"
    description: str
    amount: float        # + for inflow, - for outflow
    type: str
    category: str
    account_id: str
    subcategory: Optional[str] = None
    to_account_id: Optional[str] = None   # set on the outgoing leg of a transfer
    receipt_url: Optional[str] = None
    struck: bool = False
    transfer_group: Optional[str] = None


@dataclass(frozen=True)
class Debt:
    id: str
    name: str
    total_amount: float
    remaining_amount: float
    interest_rate: Optional[float] = None
    minimum_payment: Optional[float] = None
    due_date: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None


@dataclass(frozen=True)
class SavingsGoal:
    id: str
    name: str
    target_amount: float
    deadline: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None


@dataclass(frozen=True)
class TransferRequest:
    from_account_id: str
    to_account_id: str
    amount: float
    description: str
    subcategory: Optional[str] = None
    date: Optional[str] = None
    group_id: Optional[str] = None   # client idempotency key


class FailureKind(str, Enum):
    ACCOUNT_NOT_FOUND = "account_not_found"
    SAME_ACCOUNT = "same_account"
    INVALID_AMOUNT = "invalid_amount"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    DUPLICATE_TRANSFER = "duplicate_transfer"
    TRANSACTION_NOT_FOUND = "transaction_not_found"
    RECORD_NOT_FOUND = "record_not_found"
    ACCOUNT_IN_USE = "account_in_use"
    INVALID_REQUEST = "invalid_request"
    PERSISTENCE_ERROR = "persistence_error"


@dataclass(frozen=True)
class LedgerFailure:
    kind: FailureKind
    message: str
    details: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransferResult:
    success: bool
    message: str
    kind: Optional[FailureKind] = None
    transactions: Optional[Tuple[Transaction, Transaction]] = None
    updated_accounts: Optional[Tuple[Account, ...]] = None

    @classmethod
    def failed(cls, failure: LedgerFailure) -> "TransferResult":
        return cls(success=False, message=failure.message, kind=failure.kind)


# External record schema (camelCase keys) <-> dataclass fields.
_RECORD_KEYS = {
    Account: {"is_savings": "isSavings"},
    Transaction: {
        "account_id": "accountId",
        "to_account_id": "toAccountId",
        "receipt_url": "receiptUrl",
        "transfer_group": "transferGroup",
    },
    Debt: {
        "total_amount": "totalAmount",
        "remaining_amount": "remainingAmount",
        "interest_rate": "interestRate",
        "minimum_payment": "minimumPayment",
        "due_date": "dueDate",
        "is_active": "isActive",
        "created_at": "createdAt",
    },
    SavingsGoal: {
        "target_amount": "targetAmount",
        "is_active": "isActive",
        "created_at": "createdAt",
    },
}


def to_record(obj, keep_none: bool = False) -> dict:
    """Serialize a domain object into the external record schema.

    Optional fields that are unset are left out of the record unless
    ``keep_none`` is set, which an update needs to clear a stored value.
    """
    keys = _RECORD_KEYS[type(obj)]
    return {
        keys.get(k, k): v for k, v in asdict(obj).items() if keep_none or v is not None
    }


def _field(record: Mapping[str, Any], key: str, kind: str):
    if key not in record or record[key] is None:
        raise MalformedRecordError(f"{kind} record is missing '{key}': {dict(record)!r}")
    return record[key]


def _number(record: Mapping[str, Any], key: str, kind: str) -> float:
    value = _field(record, key, kind)
    if isinstance(value, bool):
        raise MalformedRecordError(f"{kind} field '{key}' must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise MalformedRecordError(f"{kind} field '{key}' must be a number, got {value!r}") from e


def _optional_number(record: Mapping[str, Any], key: str, kind: str) -> Optional[float]:
    if record.get(key) is None:
        return None
    return _number(record, key, kind)


def normalize_account_type(value: str) -> str:
    kind = str(value).strip().lower().replace("-", "")
    if kind not in ACCOUNT_TYPES:
        raise MalformedRecordError(f"unknown account type {value!r}")
    return kind


def account_from_record(record: Mapping[str, Any]) -> Account:
    return Account(
        id=str(_field(record, "id", "account")),
        name=_field(record, "name", "account"),
        type=normalize_account_type(_field(record, "type", "account")),
        balance=_number(record, "balance", "account"),
        is_savings=bool(record.get("isSavings", False)),
        color=record.get("color") or "bg-chart-1",
    )


def transaction_from_record(record: Mapping[str, Any]) -> Transaction:
    kind = _field(record, "type", "transaction")
    if kind not in TRANSACTION_TYPES:
        raise MalformedRecordError(f"unknown transaction type {kind!r}")
    return Transaction(
        id=str(_field(record, "id", "transaction")),
        date=_field(record, "date", "transaction"),
        description=record.get("description", ""),
        amount=_number(record, "amount", "transaction"),
        type=kind,
        category=_field(record, "category", "transaction"),
        account_id=str(_field(record, "accountId", "transaction")),
        subcategory=record.get("subcategory") or None,
        to_account_id=record.get("toAccountId") or None,
        receipt_url=record.get("receiptUrl") or None,
        struck=bool(record.get("struck", False)),
        transfer_group=record.get("transferGroup") or None,
    )


def debt_from_record(record: Mapping[str, Any]) -> Debt:
    return Debt(
        id=str(_field(record, "id", "debt")),
        name=_field(record, "name", "debt"),
        total_amount=_number(record, "totalAmount", "debt"),
        remaining_amount=_number(record, "remainingAmount", "debt"),
        interest_rate=_optional_number(record, "interestRate", "debt"),
        minimum_payment=_optional_number(record, "minimumPayment", "debt"),
        due_date=record.get("dueDate"),
        description=record.get("description"),
        is_active=bool(record.get("isActive", True)),
        created_at=record.get("createdAt"),
    )


def goal_from_record(record: Mapping[str, Any]) -> SavingsGoal:
    return SavingsGoal(
        id=str(_field(record, "id", "goal")),
        name=_field(record, "name", "goal"),
        target_amount=_number(record, "targetAmount", "goal"),
        deadline=record.get("deadline"),
        description=record.get("description"),
        is_active=bool(record.get("isActive", True)),
        created_at=record.get("createdAt"),
    )
