"""
assetrewards/tests/test_payouts.py

Tests for payout entries and the payout ledger.
"""

import pytest
from unittest.mock import patch

from assetrewards.errors import NotFoundError, StorageError
from assetrewards.rewards import Payment, PaymentStatus, PayoutEntry
from assetrewards.rewards.payouts import check_transition


def make_entry(reward_id="r1", **amounts):
    payments = [Payment(address=a, amount=v) for a, v in (amounts or {"A": 600, "B": 300}).items()]
    return PayoutEntry.from_payments(reward_id, "TOKEN", "RVN", payments)


class TestPayment:

    def test_mark_paid(self):
        payment = Payment("A", 10)
        payment.mark_paid("tx1")
        assert payment.status is PaymentStatus.PAID
        assert payment.transaction_id == "tx1"
        assert payment.completed

    def test_terminal_states_are_final(self):
        paid = Payment("A", 10)
        paid.mark_paid("tx1")
        with pytest.raises(ValueError):
            paid.mark_dropped()
        with pytest.raises(ValueError):
            paid.mark_paid("tx2")

        dropped = Payment("B", 10)
        dropped.mark_dropped()
        with pytest.raises(ValueError):
            dropped.mark_paid("tx1")

    def test_dict_roundtrip(self):
        payment = Payment("A", 10, PaymentStatus.PAID, "tx1")
        assert Payment.from_dict(payment.to_dict()) == payment


class TestPayoutEntry:

    def test_ordered_by_address(self):
        entry = make_entry(C=1, A=2, B=3)
        assert list(entry.payments) == ["A", "B", "C"]

    def test_duplicate_destination(self):
        with pytest.raises(ValueError):
            PayoutEntry.from_payments("r1", "TOKEN", "RVN", [Payment("A", 1), Payment("A", 2)])

    def test_counts_and_progress(self):
        entry = make_entry(A=1, B=2, C=3)
        assert not entry.has_progress
        assert entry.total_amount == 6

        entry.payments["A"].mark_paid("tx1")
        entry.payments["B"].mark_dropped()

        assert entry.has_progress
        assert entry.status_counts() == {"pending": 1, "paid": 1, "dropped": 1}
        assert [p.address for p in entry.pending()] == ["C"]

    def test_copy_is_independent(self):
        entry = make_entry()
        clone = entry.copy()
        clone.payments["A"].mark_paid("tx1")
        assert entry.payments["A"].status is PaymentStatus.PENDING


class TestCheckTransition:

    def test_forward_move_allowed(self):
        current = make_entry()
        proposed = current.copy()
        proposed.payments["A"].mark_paid("tx1")
        check_transition(current, proposed)

    def test_destination_set_fixed(self):
        with pytest.raises(ValueError):
            check_transition(make_entry(A=1, B=2), make_entry(A=1, C=2))

    def test_amount_fixed(self):
        with pytest.raises(ValueError):
            check_transition(make_entry(A=1), make_entry(A=2))

    def test_paid_cannot_revert(self):
        current = make_entry()
        current.payments["A"].mark_paid("tx1")
        with pytest.raises(ValueError):
            check_transition(current, make_entry())

    def test_paid_txid_fixed(self):
        current = make_entry()
        current.payments["A"].mark_paid("tx1")
        proposed = make_entry()
        proposed.payments["A"].mark_paid("tx2")
        with pytest.raises(ValueError):
            check_transition(current, proposed)


class TestPayoutLedger:

    @pytest.mark.asyncio
    async def test_store_and_get(self, ledger):
        entry = make_entry()
        await ledger.store(entry)
        assert await ledger.get("r1") == entry

    @pytest.mark.asyncio
    async def test_get_missing(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.get("nope")

    @pytest.mark.asyncio
    async def test_store_overwrites(self, ledger):
        await ledger.store(make_entry(A=1))
        await ledger.store(make_entry(B=2))
        assert list((await ledger.get("r1")).payments) == ["B"]

    @pytest.mark.asyncio
    async def test_remove(self, ledger):
        await ledger.store(make_entry())
        await ledger.remove("r1")
        with pytest.raises(NotFoundError):
            await ledger.get("r1")
        with pytest.raises(NotFoundError):
            await ledger.remove("r1")

    @pytest.mark.asyncio
    async def test_update_persists_status(self, ledger):
        await ledger.store(make_entry())
        entry = await ledger.get("r1")
        entry.payments["A"].mark_paid("tx1")
        await ledger.update(entry)

        stored = await ledger.get("r1")
        assert stored.payments["A"].status is PaymentStatus.PAID
        assert stored.payments["A"].transaction_id == "tx1"
        assert stored.payments["B"].status is PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_update_rejects_regression(self, ledger):
        """A paid payment is never written back as pending."""
        entry = make_entry()
        entry.payments["A"].mark_paid("tx1")
        await ledger.store(entry)

        with pytest.raises(ValueError):
            await ledger.update(make_entry())
        assert (await ledger.get("r1")).payments["A"].status is PaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_update_missing(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.update(make_entry())

    @pytest.mark.asyncio
    async def test_failed_update_keeps_previous(self, backend, ledger):
        await ledger.store(make_entry())
        entry = await ledger.get("r1")
        entry.payments["A"].mark_paid("tx1")

        with patch.object(backend, "put", return_value=False):
            with pytest.raises(StorageError):
                await ledger.update(entry)

        assert (await ledger.get("r1")).payments["A"].status is PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_list_all(self, ledger):
        await ledger.store(make_entry("b"))
        await ledger.store(make_entry("a"))
        assert [e.reward_id for e in await ledger.list_all()] == ["a", "b"]
