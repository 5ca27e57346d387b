import itertools
import math
import random

import pytest

from ledger.domain import Account, FailureKind, Transaction, TransferRequest, TRANSFER_CATEGORY
from ledger.transfer import (
    delete_transfer,
    edit_transfer,
    is_incoming_leg,
    process_transfer,
    transfer_legs,
)


def acc(acc_id, balance, name=None):
    return Account(id=acc_id, name=name or acc_id, type="bank", balance=balance)


def counter_ids(prefix="id"):
    c = itertools.count()
    return lambda: f"{prefix}{next(c)}"


def req(src, dst, amount, **kw):
    return TransferRequest(from_account_id=src, to_account_id=dst, amount=amount, description=kw.pop("description", "move"), **kw)


def balances(accounts):
    return {a.id: a.balance for a in accounts}


def test_transfer_moves_money_between_two_accounts():
    accounts = (acc("A", 1_000_000), acc("B", 500_000))
    result = process_transfer(req("A", "B", 200_000), accounts, (), today="2025-09-01")

    assert result.success
    assert result.kind is None
    assert balances(result.updated_accounts) == {"A": 800_000, "B": 700_000}

    debit, credit = result.transactions
    assert (debit.account_id, debit.amount, debit.type, debit.to_account_id) == ("A", -200_000, "transfer", "B")
    assert (credit.account_id, credit.amount, credit.type) == ("B", 200_000, "transfer")
    assert is_incoming_leg(credit)
    assert not is_incoming_leg(debit)


def test_transfer_legs_share_group_date_and_labels():
    accounts = (acc("A", 1000), acc("B", 0))
    request = req("A", "B", 250, description="Top up", subcategory="Top Up", date="2025-09-03")
    result = process_transfer(request, accounts, (), id_factory=counter_ids(), today="2025-09-30")

    debit, credit = result.transactions
    # group id is drawn before the two leg ids
    assert debit.transfer_group == credit.transfer_group == "id0"
    assert (debit.id, credit.id) == ("id1", "id2")
    for leg in result.transactions:
        assert leg.date == "2025-09-03"
        assert leg.description == "Top up"
        assert leg.subcategory == "Top Up"
        assert leg.category == TRANSFER_CATEGORY


def test_transfer_uses_today_when_no_date_given():
    result = process_transfer(req("A", "B", 10), (acc("A", 10), acc("B", 0)), (), today="2025-10-01")
    assert [t.date for t in result.transactions] == ["2025-10-01", "2025-10-01"]


def test_transfer_keeps_client_group_id():
    result = process_transfer(req("A", "B", 10, group_id="g-1"), (acc("A", 10), acc("B", 0)), ())
    assert {t.transfer_group for t in result.transactions} == {"g-1"}


def test_other_accounts_are_untouched():
    accounts = (acc("A", 500), acc("B", 0), acc("C", 42))
    result = process_transfer(req("A", "B", 100), accounts, ())
    assert result.updated_accounts[2] is accounts[2]
    assert [a.id for a in result.updated_accounts] == ["A", "B", "C"]


def test_transfer_conserves_total_balance():
    rng = random.Random(7)
    for _ in range(300):
        n = rng.randint(2, 5)
        accounts = tuple(acc(f"a{i}", round(rng.uniform(0, 5_000_000), 2)) for i in range(n))
        src, dst = rng.sample([a.id for a in accounts], 2)
        amount = round(rng.uniform(0.01, 6_000_000), 2)
        result = process_transfer(req(src, dst, amount), accounts, (), allow_overdraft=rng.random() < 0.5)
        if not result.success:
            assert result.kind == FailureKind.INSUFFICIENT_FUNDS
            continue
        assert sum(balances(result.updated_accounts).values()) == pytest.approx(
            sum(a.balance for a in accounts)
        )
        debit, credit = result.transactions
        assert debit.amount == -credit.amount
        assert (debit.account_id, credit.account_id) == (src, dst)


def test_inputs_are_not_mutated():
    accounts = [acc("A", 1_000), acc("B", 0)]
    transactions = [Transaction(id="t1", date="2025-09-01", description="x", amount=5,
                                type="income", category="Pemasukan", account_id="A")]
    accounts_before = list(accounts)
    transactions_before = list(transactions)

    ok = process_transfer(req("A", "B", 400), accounts, transactions)
    bad = process_transfer(req("A", "A", 400), accounts, transactions)

    assert ok.success and not bad.success
    assert accounts == accounts_before
    assert transactions == transactions_before
    assert accounts[0].balance == 1_000


def test_self_transfer_is_rejected():
    result = process_transfer(req("A", "A", 100), (acc("A", 1_000),), ())
    assert not result.success
    assert result.kind == FailureKind.SAME_ACCOUNT
    assert result.transactions is None
    assert result.updated_accounts is None


def test_unknown_destination_is_rejected():
    result = process_transfer(req("A", "ghost", 100), (acc("A", 1_000),), ())
    assert result.kind == FailureKind.ACCOUNT_NOT_FOUND
    assert "ghost" in result.message


def test_unknown_source_is_checked_before_same_account():
    result = process_transfer(req("ghost", "ghost", 100), (acc("A", 1_000),), ())
    assert result.kind == FailureKind.ACCOUNT_NOT_FOUND


@pytest.mark.parametrize("amount", [0, -50, math.nan, math.inf, -math.inf, "abc", None, True])
def test_invalid_amounts_are_rejected(amount):
    result = process_transfer(req("A", "B", amount), (acc("A", 1_000), acc("B", 0)), ())
    assert result.kind == FailureKind.INVALID_AMOUNT
    assert result.transactions is None


def test_numeric_string_amount_is_accepted():
    result = process_transfer(req("A", "B", "250"), (acc("A", 1_000), acc("B", 0)), ())
    assert result.success
    assert result.transactions[1].amount == 250.0


def test_insufficient_funds_leaves_accounts_unchanged():
    accounts = (acc("A", 100), acc("B", 0))
    result = process_transfer(req("A", "B", 200), accounts, ())
    assert result.kind == FailureKind.INSUFFICIENT_FUNDS
    assert result.updated_accounts is None
    assert balances(accounts) == {"A": 100, "B": 0}


def test_overdraft_can_be_allowed():
    result = process_transfer(req("A", "B", 200), (acc("A", 100), acc("B", 0)), (), allow_overdraft=True)
    assert result.success
    assert balances(result.updated_accounts) == {"A": -100, "B": 200}


def test_exact_balance_can_be_sent():
    result = process_transfer(req("A", "B", 100), (acc("A", 100), acc("B", 0)), ())
    assert result.success
    assert balances(result.updated_accounts)["A"] == 0


def test_replayed_group_is_rejected():
    accounts = (acc("A", 1_000), acc("B", 0))
    first = process_transfer(req("A", "B", 100, group_id="g-1"), accounts, ())
    again = process_transfer(req("A", "B", 100, group_id="g-1"), first.updated_accounts, first.transactions)
    assert again.kind == FailureKind.DUPLICATE_TRANSFER


def test_malformed_input_raises():
    accounts = (acc("A", 1_000), acc("B", 0))
    with pytest.raises(TypeError):
        process_transfer({"fromAccountId": "A", "toAccountId": "B", "amount": 1}, accounts, ())
    with pytest.raises(TypeError):
        process_transfer(req("A", "B", 1), [{"id": "A", "balance": 1_000}], ())
    with pytest.raises(TypeError):
        process_transfer(req("A", "B", 1), accounts, [{"id": "t1"}])


def _transferred(amount=200_000):
    accounts = (acc("A", 1_000_000), acc("B", 500_000))
    result = process_transfer(req("A", "B", amount, group_id="g"), accounts, ())
    return accounts, result.updated_accounts, result.transactions


def test_transfer_legs_finds_the_pair():
    _, _, trans = _transferred()
    debit, credit = transfer_legs(trans, "g").unwrap()
    assert debit.amount < 0 < credit.amount
    assert transfer_legs(trans, "nope").get_error().kind == FailureKind.TRANSACTION_NOT_FOUND


def test_delete_transfer_restores_balances():
    original, accounts, trans = _transferred()
    new_accounts, new_trans = delete_transfer(accounts, trans, "g").unwrap()
    assert balances(new_accounts) == balances(original)
    assert new_trans == ()


def test_edit_transfer_moves_both_legs():
    original, accounts, trans = _transferred()
    new_accounts, new_trans = edit_transfer(accounts, trans, "g", amount=300_000, description="fixed").unwrap()

    assert balances(new_accounts) == {"A": 700_000, "B": 800_000}
    assert sum(balances(new_accounts).values()) == sum(a.balance for a in original)
    assert sorted(t.amount for t in new_trans) == [-300_000, 300_000]
    assert {t.description for t in new_trans} == {"fixed"}
    assert [t.id for t in new_trans] == [t.id for t in trans]


def test_edit_transfer_checks_funds_after_reversal():
    _, accounts, trans = _transferred()
    # A holds 800k but 1M once the old leg is reversed
    assert edit_transfer(accounts, trans, "g", amount=1_000_000).is_right()
    failed = edit_transfer(accounts, trans, "g", amount=1_000_001)
    assert failed.get_error().kind == FailureKind.INSUFFICIENT_FUNDS


def test_edit_transfer_rejects_bad_amount():
    _, accounts, trans = _transferred()
    assert edit_transfer(accounts, trans, "g", amount=0).get_error().kind == FailureKind.INVALID_AMOUNT
