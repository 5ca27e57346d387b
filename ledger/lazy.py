from collections import defaultdict
from typing import Callable, Iterable, Iterator, Tuple

from ledger.domain import Transaction


def iter_transactions(
    trans: Iterable[Transaction], pred: Callable[[Transaction], bool]
) -> Iterator[Transaction]:
    for t in trans:
        if pred(t):
            yield t


def lazy_top_categories(trans: Iterable[Transaction], k: int) -> Iterator[Tuple[str, float]]:
    """Yield the ``k`` spending buckets with the largest expense totals.

    Entries are bucketed by subcategory, falling back to the category.
    """
    totals_by_category: dict[str, float] = defaultdict(float)

    for t in trans:
        if t.type == "expense":
            totals_by_category[t.subcategory or t.category] += -t.amount

    ordered = sorted(totals_by_category.items(), key=lambda item: item[1], reverse=True)

    for name, total in ordered[: max(0, k)]:
        yield name, total
