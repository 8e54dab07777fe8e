"""
Tests for the account stores.

Both implementations must agree on the compare-and-swap contract,
so most tests run against each of them.
"""

import pytest

from atm_ledger.errors import AccountNotFound, BalanceConflict
from atm_ledger.money import Money
from atm_ledger.services.account_store import InMemoryAccountStore, SqlAccountStore


@pytest.fixture(params=["memory", "sql"])
def store_with_account(request, make_account, session_factory):
    """A store holding one account, 'user001', with balance 100.00."""
    if request.param == "memory":
        store = InMemoryAccountStore()
        store.add_account("acct-1", "user001", "John Doe", "100.00", pin="1234")
        return store, "acct-1"

    account_id = make_account(
        "user001", holder_name="John Doe", balance_cents=10000, pin="1234"
    )
    return SqlAccountStore(session_factory), account_id


class TestRead:

    def test_get_returns_snapshot(self, store_with_account):
        store, account_id = store_with_account
        account = store.get(account_id)

        assert account.id == account_id
        assert account.user_id == "user001"
        assert account.holder_name == "John Doe"
        assert account.balance == Money.parse("100.00")

    def test_get_by_user_id(self, store_with_account):
        store, account_id = store_with_account
        assert store.get_by_user_id("user001").id == account_id

    def test_unknown_account_not_found(self, store_with_account):
        store, _ = store_with_account
        with pytest.raises(AccountNotFound):
            store.get("missing")
        with pytest.raises(AccountNotFound):
            store.get_by_user_id("nobody")


class TestSetBalance:

    def test_matching_expected_balance_updates(self, store_with_account):
        store, account_id = store_with_account
        before = store.get(account_id)

        after = store.set_balance(
            account_id, Money.parse("70.00"), Money.parse("100.00")
        )

        assert after.balance == Money.parse("70.00")
        assert after.updated_at > before.updated_at
        assert store.get(account_id).balance == Money.parse("70.00")

    def test_stale_expected_balance_conflicts(self, store_with_account):
        store, account_id = store_with_account

        with pytest.raises(BalanceConflict):
            store.set_balance(
                account_id, Money.parse("10.00"), Money.parse("99.99")
            )
        assert store.get(account_id).balance == Money.parse("100.00")

    def test_second_writer_with_same_observation_conflicts(self, store_with_account):
        store, account_id = store_with_account
        observed = store.get(account_id).balance

        store.set_balance(account_id, Money.parse("110.00"), observed)
        with pytest.raises(BalanceConflict):
            store.set_balance(account_id, Money.parse("110.00"), observed)

        assert store.get(account_id).balance == Money.parse("110.00")

    def test_unknown_account_not_found(self, store_with_account):
        store, _ = store_with_account
        with pytest.raises(AccountNotFound):
            store.set_balance("missing", Money.parse("1.00"), Money.zero())

    def test_negative_balance_refused(self, store_with_account):
        store, account_id = store_with_account
        with pytest.raises(ValueError, match="negative"):
            store.set_balance(
                account_id, Money.parse("-1.00", positive=False), Money.parse("100.00")
            )
        assert store.get(account_id).balance == Money.parse("100.00")

    def test_write_bumps_version_and_stamps_write_id(self, store_with_account):
        store, account_id = store_with_account
        before = store.get(account_id)

        after = store.set_balance(
            account_id,
            Money.parse("90.00"),
            Money.parse("100.00"),
            expected_version=before.version,
            write_id="write-1",
        )

        assert after.version == before.version + 1
        assert after.write_id == "write-1"
        stored = store.get(account_id)
        assert stored.version == after.version
        assert stored.write_id == "write-1"

    def test_stale_version_conflicts_even_when_balance_matches(self, store_with_account):
        store, account_id = store_with_account
        observed = store.get(account_id)

        # A->B->A: the balance is back where it was, the version is not
        store.set_balance(account_id, Money.parse("50.00"), Money.parse("100.00"))
        store.set_balance(account_id, Money.parse("100.00"), Money.parse("50.00"))

        with pytest.raises(BalanceConflict):
            store.set_balance(
                account_id,
                Money.parse("90.00"),
                Money.parse("100.00"),
                expected_version=observed.version,
            )
        assert store.get(account_id).version == observed.version + 2

    def test_timestamps_strictly_increase(self, store_with_account):
        store, account_id = store_with_account
        stamps = []
        balance = store.get(account_id).balance
        for _ in range(5):
            updated = store.set_balance(account_id, balance + Money.from_cents(1), balance)
            balance = updated.balance
            stamps.append(updated.updated_at)

        assert stamps == sorted(stamps)
        assert len(set(stamps)) == len(stamps)


class TestCheckPin:

    def test_correct_pin(self, store_with_account):
        store, _ = store_with_account
        assert store.check_pin("user001", "1234") is True

    def test_wrong_pin_or_unknown_user(self, store_with_account):
        store, _ = store_with_account
        assert store.check_pin("user001", "0000") is False
        assert store.check_pin("nobody", "1234") is False


class TestInMemoryProvisioning:

    def test_duplicate_user_id_rejected(self):
        store = InMemoryAccountStore()
        store.add_account("a", "user001", "A")
        with pytest.raises(ValueError, match="already exists"):
            store.add_account("b", "user001", "B")
