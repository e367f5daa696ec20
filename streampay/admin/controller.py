"""
Admin controller — owner-only operations over the settlement engine.

Every method checks the caller against the platform owner first and
raises Forbidden before touching any state.
"""

import threading
import uuid

from loguru import logger

from streampay.core.canonical import amount_to_wire
from streampay.core.emitter import EventLog
from streampay.core.exceptions import Forbidden, NothingToWithdraw, TransferFailed
from streampay.core.models import EventType
from streampay.ledger.records import Creator
from streampay.ledger.store import LedgerStore
from streampay.registry.creators import CreatorRegistry
from streampay.settlement.params import PlatformParameters, validate_fee_percentage
from streampay.settlement.payout import PayoutRail


class AdminController:
    """Owner-only fee management and creator moderation."""

    def __init__(
        self,
        params: PlatformParameters,
        store: LedgerStore,
        creators: CreatorRegistry,
        rail: PayoutRail,
        events: EventLog,
    ):
        self.params = params
        self.store = store
        self.creators = creators
        self.rail = rail
        self.events = events
        self._fee_lock = threading.Lock()

    def set_platform_fee(self, caller: str, percentage: int) -> int:
        """
        Change the platform fee applied to subsequent payments.

        Returns:
            The previous fee percentage

        Raises:
            Forbidden: caller is not the owner
            OutOfRange: percentage outside [0, 10]
        """
        self._require_owner(caller, "set_platform_fee")
        validate_fee_percentage(percentage)

        with self._fee_lock:
            previous = self.params.fee_percentage
            self.events.emit(
                EventType.PLATFORM_FEE_UPDATED,
                {"previous": previous, "percentage": percentage},
                actor=caller,
            )
            self.params.replace_fee(percentage)
        logger.info("Platform fee updated: {}% -> {}%", previous, percentage)
        return previous

    def withdraw_platform_fees(self, caller: str) -> int:
        """
        Pay the accumulated fee residue out to the owner.

        Returns:
            The amount withdrawn

        Raises:
            Forbidden, NothingToWithdraw, TransferFailed
        """
        self._require_owner(caller, "withdraw_platform_fees")

        with self.store.treasury():
            amount = self.store.take_fees()
            if amount == 0:
                raise NothingToWithdraw("No platform fees to withdraw")
            reference = f"fees-{uuid.uuid4()}"
            try:
                self.rail.transfer(caller, amount, reference)
            except Exception as exc:
                self.store.restore_fees(amount)
                logger.warning("Fee withdrawal failed: amount={} error={}", amount, exc)
                if isinstance(exc, TransferFailed):
                    raise
                raise TransferFailed(
                    f"Fee withdrawal failed: {exc}",
                    {"amount": amount},
                ) from exc
            self.events.emit(
                EventType.PLATFORM_FEES_WITHDRAWN,
                {"owner": caller, "amount": amount_to_wire(amount)},
                actor=caller,
            )

        logger.info("Platform fees withdrawn: owner={} amount={}", caller, amount)
        return amount

    def pause_creator(self, caller: str, identity: str) -> Creator:
        """Deactivate a creator. See CreatorRegistry.pause()."""
        self._require_owner(caller, "pause_creator")
        return self.creators.pause(identity, actor=caller)

    def _require_owner(self, caller: str, operation: str) -> None:
        if not self.params.is_owner(caller):
            logger.warning("Forbidden admin call: operation={} caller={}", operation, caller)
            raise Forbidden(
                "Only the platform owner may call this operation",
                {"operation": operation, "caller": caller},
            )
