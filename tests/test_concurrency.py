"""
tests/test_concurrency.py

Concurrency safety of settlements.
Simultaneous payments must never over-debit a viewer, lose an update, or
leave the event log out of order.

Run:
    pytest tests/test_concurrency.py -v --tb=short
"""

import threading

import pytest

from streampay import (
    AuditReplay,
    InsufficientBalance,
    NothingToWithdraw,
    NotRegistered,
    StreamPayService,
    TransferFailed,
)

OWNER = "platform-owner"


def _run_threads(target, n):
    threads = [threading.Thread(target=target) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    assert not any(t.is_alive() for t in threads), "threads deadlocked"


class TestConcurrency:

    def test_concurrent_payments_never_overdraw(self, rail):
        svc = StreamPayService.create(owner=OWNER, rail=rail)
        svc.register_creator("alice", "Alice Live", 10)
        svc.deposit_funds("bob", 1000)

        ok, rejected, errors = [], [], []

        def pay_once():
            try:
                ok.append(svc.process_payment("bob", "alice", 10))
            except InsufficientBalance:
                rejected.append(1)
            except Exception as e:
                errors.append(repr(e))

        _run_threads(pay_once, 20)

        assert errors == []
        assert len(ok) == 10
        assert len(rejected) == 10
        assert svc.get_viewer_balance("bob") == 0
        assert svc.get_watch_time("bob", "alice") == 100
        assert rail.total_paid_to("alice") == 950
        assert svc.get_platform_fee_balance() == 50

    def test_opposite_direction_payments_do_not_deadlock(self, rail):
        svc = StreamPayService.create(owner=OWNER, rail=rail)
        for who in ("alice", "bob"):
            svc.register_creator(who, who.title(), 1)
            svc.deposit_funds(who, 10_000)

        def a_pays_b():
            for _ in range(50):
                svc.process_payment("alice", "bob", 1)

        def b_pays_a():
            for _ in range(50):
                svc.process_payment("bob", "alice", 1)

        threads = [threading.Thread(target=a_pays_b), threading.Thread(target=b_pays_a)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)
        assert not any(t.is_alive() for t in threads), "threads deadlocked"

        assert svc.get_watch_time("alice", "bob") == 50
        assert svc.get_watch_time("bob", "alice") == 50
        assert svc.get_viewer_balance("alice") == 9950
        assert svc.get_viewer_balance("bob") == 9950

    def test_event_log_consistent_after_concurrent_load(self, tmp_path, rail):
        svc = StreamPayService.create(owner=OWNER, rail=rail, event_log_path=tmp_path)
        svc.register_creator("alice", "Alice Live", 3)
        svc.register_creator("carol", "Carol Live", 7)

        ids = iter(range(100))
        ids_lock = threading.Lock()

        def viewer_session():
            with ids_lock:
                viewer = f"viewer-{next(ids)}"
            svc.deposit_funds(viewer, 5000)
            for creator in ("alice", "carol") * 5:
                svc.process_payment(viewer, creator, 11)

        _run_threads(viewer_session, 8)

        assert svc.events.verify_chain()

        replay = AuditReplay()
        replay.load(svc.events.log_file)
        summary = replay.verify()
        assert summary.chain_valid, summary.violations
        assert summary.total_entries == len(svc.events)

        figures = replay.reconcile()
        for viewer, balance in figures.balances.items():
            assert svc.get_viewer_balance(viewer) == balance
        assert figures.earnings["alice"] == svc.get_creator_info("alice").total_earnings
        assert figures.earnings["carol"] == svc.get_creator_info("carol").total_earnings
        assert figures.platform_fees == svc.get_platform_fee_balance()

    def test_concurrent_withdrawals_pay_once(self, funded, rail):
        funded.process_payment("bob", "alice", 50)
        results = []

        def withdraw():
            try:
                results.append(funded.withdraw_platform_fees(OWNER))
            except Exception as e:
                results.append(type(e).__name__)

        _run_threads(withdraw, 5)

        assert results.count(250) == 1
        assert results.count("NothingToWithdraw") == 4
        assert rail.total_paid_to(OWNER) == 250

    def test_withdrawal_during_failing_payout_takes_only_settled_fees(self, funded, rail):
        funded.process_payment("bob", "alice", 50)

        payout_started = threading.Event()
        release_payout = threading.Event()

        def stall_then_reject(recipient, amount):
            if recipient != "alice":
                return False
            payout_started.set()
            release_payout.wait(timeout=10)
            return True

        rail.fail_when(stall_then_reject)
        outcome = []

        def pay():
            try:
                funded.process_payment("bob", "alice", 50)
                outcome.append("paid")
            except TransferFailed:
                outcome.append("rolled back")

        payer = threading.Thread(target=pay)
        payer.start()
        assert payout_started.wait(timeout=10)

        assert funded.withdraw_platform_fees(OWNER) == 250

        release_payout.set()
        payer.join(timeout=30)
        assert not payer.is_alive(), "payment thread hung"

        assert outcome == ["rolled back"]
        assert funded.get_platform_fee_balance() == 0
        assert rail.total_paid_to(OWNER) == 250
        assert funded.get_viewer_balance("bob") == 5000
        assert funded.get_creator_info("alice").total_earnings == 4750
        with pytest.raises(NothingToWithdraw):
            funded.withdraw_platform_fees(OWNER)

    def test_payments_to_unknown_creators_leave_no_locks_behind(self, funded):
        for i in range(50):
            with pytest.raises(NotRegistered):
                funded.process_payment("bob", f"ghost-{i}", 1)
        with pytest.raises(NotRegistered):
            funded.start_stream("ghost-stream", "Nothing")
        with pytest.raises(NotRegistered):
            funded.pause_creator(OWNER, "ghost-pause")

        held = set(funded.store._locks)
        assert not any(name.startswith("ghost") for name in held)
