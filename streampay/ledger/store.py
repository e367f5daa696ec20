"""
Ledger store — balances, earnings, watch time, and the lock table.

The store is pure data plus locking. It performs no validation beyond
keeping balances non-negative; business rules live in the registries and
the settlement engine.

Locking discipline:
    - every identity has its own re-entrant lock, created lazily
    - callers touching several identities use locked(*identities), which
      acquires in lexicographic order so two settlements never deadlock
    - the platform fee accumulator has its own treasury lock

Storage is in-memory. The event log is the durable record; on restart the
service replays it to rebuild every figure held here.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager, ExitStack
from typing import Dict, Iterator, Tuple

from loguru import logger

from streampay.core.exceptions import InsufficientBalance
from streampay.ledger.records import checked_amount


class LedgerStore:
    """In-memory store of viewer balances, creator earnings and watch time.

    Usage:
        store = LedgerStore()
        with store.locked(viewer, creator):
            store.debit(viewer, 500)
            store.add_earnings(creator, 475)
    """

    def __init__(self) -> None:
        self._balances: Dict[str, int] = {}
        self._earnings: Dict[str, int] = {}
        self._watch_time: Dict[Tuple[str, str], int] = {}
        self._platform_fees = 0

        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._treasury_lock = threading.Lock()

    # ── Locking ───────────────────────────────────────────────

    def lock_for(self, identity: str) -> threading.RLock:
        """Return the lock guarding identity's records."""
        with self._locks_guard:
            lock = self._locks.get(identity)
            if lock is None:
                lock = threading.RLock()
                self._locks[identity] = lock
            return lock

    @contextmanager
    def locked(self, *identities: str) -> Iterator[None]:
        """Hold the locks of all given identities, in a fixed global order."""
        ordered = sorted(set(identities))
        with ExitStack() as stack:
            for identity in ordered:
                stack.enter_context(self.lock_for(identity))
            logger.debug("Locks held: {}", ordered)
            yield

    # ── Viewer balances ───────────────────────────────────────

    def balance_of(self, viewer: str) -> int:
        return self._balances.get(viewer, 0)

    def credit(self, viewer: str, amount: int) -> int:
        """Add amount to viewer's balance. Caller holds viewer's lock."""
        new_balance = checked_amount(self.balance_of(viewer) + amount, "balance")
        self._balances[viewer] = new_balance
        return new_balance

    def debit(self, viewer: str, amount: int) -> int:
        """Subtract amount from viewer's balance. Caller holds viewer's lock."""
        current = self.balance_of(viewer)
        if current < amount:
            raise InsufficientBalance(
                "Balance cannot cover debit",
                {"viewer": viewer, "balance": current, "amount": amount},
            )
        self._balances[viewer] = current - amount
        return current - amount

    def set_balance(self, viewer: str, amount: int) -> None:
        """Restore a previously read balance. Used for rollback only."""
        self._balances[viewer] = amount

    def total_viewer_balances(self) -> int:
        return sum(self._balances.values())

    # ── Creator earnings ──────────────────────────────────────

    def earnings_of(self, creator: str) -> int:
        return self._earnings.get(creator, 0)

    def add_earnings(self, creator: str, amount: int) -> int:
        new_total = checked_amount(self.earnings_of(creator) + amount, "earnings")
        self._earnings[creator] = new_total
        return new_total

    def set_earnings(self, creator: str, amount: int) -> None:
        self._earnings[creator] = amount

    # ── Watch time ────────────────────────────────────────────

    def watch_time(self, viewer: str, creator: str) -> int:
        return self._watch_time.get((viewer, creator), 0)

    def add_watch_time(self, viewer: str, creator: str, seconds: int) -> int:
        key = (viewer, creator)
        total = self._watch_time.get(key, 0) + seconds
        self._watch_time[key] = total
        return total

    def set_watch_time(self, viewer: str, creator: str, seconds: int) -> None:
        self._watch_time[(viewer, creator)] = seconds

    # ── Platform fees ─────────────────────────────────────────

    @property
    def platform_fees(self) -> int:
        """Fee residue held by the platform and not yet withdrawn."""
        with self._treasury_lock:
            return self._platform_fees

    def accrue_fee(self, amount: int) -> None:
        with self._treasury_lock:
            self._platform_fees = checked_amount(self._platform_fees + amount, "platform fees")

    @contextmanager
    def treasury(self) -> Iterator[None]:
        """Hold the treasury lock across a read-then-withdraw sequence."""
        with self._treasury_lock:
            yield

    def take_fees(self) -> int:
        """Zero the fee residue and return it. Caller holds treasury()."""
        amount = self._platform_fees
        self._platform_fees = 0
        return amount

    def restore_fees(self, amount: int) -> None:
        """Undo take_fees(). Caller holds treasury()."""
        self._platform_fees += amount
