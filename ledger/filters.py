from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from ledger.domain import Transaction

Predicate = Callable[[Transaction], bool]

SORT_KEYS = {
    "date": lambda t: t.date,
    "amount": lambda t: abs(t.amount),
    "description": lambda t: t.description.lower(),
}


def by_account(acc_id: str) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return t.account_id == acc_id or t.to_account_id == acc_id

    return _filter


def by_category(category: str) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return t.category == category

    return _filter


def by_type(kind: str) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return t.type == kind

    return _filter


def by_date_range(start: Optional[str] = None, end: Optional[str] = None) -> Predicate:
    # ISO dates compare correctly as strings; either end may be open.
    def _filter(t: Transaction) -> bool:
        day = t.date[:10]
        if start and day < start:
            return False
        if end and day > end:
            return False
        return True

    return _filter


def by_amount_range(min: float, max: float) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return min <= t.amount <= max

    return _filter


def by_search(term: str) -> Predicate:
    needle = term.strip().lower()

    def _filter(t: Transaction) -> bool:
        return needle in t.description.lower()

    return _filter


def all_of(*preds: Predicate) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return all(p(t) for p in preds)

    return _filter


def sort_transactions(
    trans: Tuple[Transaction, ...], key: str = "date", descending: bool = True
) -> Tuple[Transaction, ...]:
    if key not in SORT_KEYS:
        raise ValueError(f"unknown sort key {key!r}, expected one of {sorted(SORT_KEYS)}")
    return tuple(sorted(trans, key=SORT_KEYS[key], reverse=descending))


@dataclass(frozen=True)
class Page:
    items: Tuple[Transaction, ...]
    page: int
    per_page: int
    total: int
    total_pages: int


def paginate(trans: Tuple[Transaction, ...], page: int = 1, per_page: int = 10) -> Page:
    """Slice one 1-based page out of ``trans``; out-of-range pages clamp."""
    if per_page < 1:
        raise ValueError("per_page must be at least 1")
    total = len(trans)
    total_pages = max(1, -(-total // per_page))
    page = min(max(1, page), total_pages)
    start = (page - 1) * per_page
    return Page(
        items=tuple(trans[start:start + per_page]),
        page=page,
        per_page=per_page,
        total=total,
        total_pages=total_pages,
    )
