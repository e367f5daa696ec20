"""
Creator registry — identity, pricing and active status of creators.

Creators are never deleted. price_per_second is fixed at registration.
Earnings are kept in the ledger store; get_info() joins them in.
"""

from __future__ import annotations

import threading
from typing import Dict, List

from loguru import logger

from streampay.core.canonical import amount_to_wire
from streampay.core.emitter import EventLog
from streampay.core.exceptions import AlreadyRegistered, InvalidInput, NotRegistered
from streampay.core.models import EventType
from streampay.ledger.records import Creator, checked_amount
from streampay.ledger.store import LedgerStore


class CreatorRegistry:
    """Registry of creators, enumerable in registration order."""

    def __init__(self, store: LedgerStore, events: EventLog) -> None:
        self.store = store
        self.events = events
        self._creators: Dict[str, Creator] = {}
        self._order: List[str] = []
        self._order_lock = threading.Lock()

    def register(self, identity: str, name: str, price_per_second: int) -> Creator:
        """Register identity as a creator charging price_per_second.

        Raises:
            InvalidInput: name is empty or price_per_second is not a positive int.
            AlreadyRegistered: identity is already a creator.
        """
        if not identity:
            raise InvalidInput("Creator identity must be non-empty")
        if not isinstance(name, str) or not name.strip():
            raise InvalidInput("Creator name must be non-empty", {"identity": identity})
        if (
            not isinstance(price_per_second, int)
            or isinstance(price_per_second, bool)
            or price_per_second <= 0
        ):
            raise InvalidInput(
                "price_per_second must be a positive integer",
                {"identity": identity, "price_per_second": price_per_second},
            )
        checked_amount(price_per_second, "price_per_second")

        with self.store.locked(identity):
            if identity in self._creators:
                raise AlreadyRegistered("Creator already registered", {"identity": identity})

            creator = Creator(
                identity=identity,
                name=name,
                price_per_second=price_per_second,
                is_active=True,
            )
            # Event first: a failed append leaves the registry untouched.
            self.events.emit(
                EventType.CREATOR_REGISTERED,
                {
                    "creator": identity,
                    "name": name,
                    "price_per_second": amount_to_wire(price_per_second),
                },
                actor=identity,
            )
            self._creators[identity] = creator
            with self._order_lock:
                self._order.append(identity)

        logger.info(
            "Creator registered: identity={} price_per_second={}",
            identity, price_per_second,
        )
        return self.get_info(identity)

    def pause(self, identity: str, actor: str) -> Creator:
        """Deactivate a creator. One-way: there is no unpause."""
        if not self.is_registered(identity):
            raise NotRegistered("Creator not registered", {"identity": identity})
        with self.store.locked(identity):
            creator = self._creators[identity]
            self.events.emit(EventType.CREATOR_PAUSED, {"creator": identity}, actor=actor)
            creator.is_active = False

        logger.info("Creator paused: identity={} by={}", identity, actor)
        return self.get_info(identity)

    def restore(self, identity: str, name: str, price_per_second: int, is_active: bool) -> None:
        """Re-insert a creator read back from the event log. Emits nothing."""
        with self.store.locked(identity):
            self._creators[identity] = Creator(
                identity=identity,
                name=name,
                price_per_second=price_per_second,
                is_active=is_active,
            )
            with self._order_lock:
                self._order.append(identity)

    def get(self, identity: str) -> Creator:
        """Live record. Raises NotRegistered. Caller holds identity's lock."""
        creator = self._creators.get(identity)
        if creator is None:
            raise NotRegistered("Creator not registered", {"identity": identity})
        return creator

    def get_info(self, identity: str) -> Creator:
        """Snapshot of a creator; zero-valued for unknown identities."""
        creator = self._creators.get(identity)
        if creator is None:
            return Creator(identity=identity)
        return Creator(
            identity=creator.identity,
            name=creator.name,
            price_per_second=creator.price_per_second,
            total_earnings=self.store.earnings_of(identity),
            is_active=creator.is_active,
            subscriber_count=creator.subscriber_count,
        )

    def is_registered(self, identity: str) -> bool:
        return identity in self._creators

    def is_active(self, identity: str) -> bool:
        creator = self._creators.get(identity)
        return creator is not None and creator.is_active

    def total_creators(self) -> int:
        with self._order_lock:
            return len(self._order)

    def list_creators(self) -> List[str]:
        """Creator identities in registration order."""
        with self._order_lock:
            return list(self._order)
