"""
Payout rail abstraction — where creator earnings and platform fees go.

The settlement engine never moves money itself. It calls a PayoutRail,
and treats any exception from transfer() as a failed payout that must be
rolled back. Adding a real rail (bank, stablecoin, processor) means
implementing this Protocol; settlement logic does not change.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Protocol, runtime_checkable

from streampay.core.exceptions import TransferFailed
from streampay.core.time import utc_now


@runtime_checkable
class PayoutRail(Protocol):
    """Contract for payout destinations."""

    def transfer(self, recipient: str, amount: int, reference: str) -> None:
        """Move amount to recipient. Raise on any failure."""
        ...


@dataclass(frozen=True)
class Transfer:
    """One completed transfer on the in-memory rail."""
    recipient: str
    amount: int
    reference: str
    at_utc: datetime = field(default_factory=utc_now)


class InMemoryPayoutRail:
    """Records transfers in memory. Used by tests and local runs.

    A failure hook can be installed to reject selected transfers:

        rail = InMemoryPayoutRail()
        rail.fail_when(lambda recipient, amount: recipient == "mallory")
    """

    def __init__(self) -> None:
        self._transfers: List[Transfer] = []
        self._lock = threading.Lock()
        self._should_fail: Optional[Callable[[str, int], bool]] = None

    def fail_when(self, predicate: Optional[Callable[[str, int], bool]]) -> None:
        """Reject transfers for which predicate(recipient, amount) is true."""
        self._should_fail = predicate

    def transfer(self, recipient: str, amount: int, reference: str) -> None:
        if self._should_fail is not None and self._should_fail(recipient, amount):
            raise TransferFailed(
                "Payout rejected by rail",
                {"recipient": recipient, "amount": amount},
            )
        with self._lock:
            self._transfers.append(Transfer(recipient, amount, reference))

    @property
    def transfers(self) -> List[Transfer]:
        with self._lock:
            return list(self._transfers)

    def total_paid_to(self, recipient: str) -> int:
        with self._lock:
            return sum(t.amount for t in self._transfers if t.recipient == recipient)
