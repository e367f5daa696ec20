"""
Settlement engine for pay-per-second viewing.

pay() is all-or-nothing. It runs under the viewer's and the creator's
locks, in this order:

    1. Creator must be registered and active
    2. watch_seconds > 0, attached_amount >= 0
    3. total_cost = price_per_second × watch_seconds       (Overflow if too wide)
    4. platform_fee = total_cost × fee% // 100; creator_earnings = rest
    5. balance + attached >= total_cost                    (InsufficientBalance)
    6. credit attached, debit total_cost
    7. watch time += watch_seconds
    8. creator earnings += creator_earnings
    9. payout creator_earnings through the rail            (rollback 6–8 on failure)
   10. fee residue += platform_fee
   11. append Deposited?, PaymentProcessed, CreatorPaidOut

The fee is accrued only after the payout succeeds; a fee withdrawal running
alongside never sees residue from a payment that is still in flight.

Floor division leaves any rounding remainder with the platform, so
creator_earnings + platform_fee == total_cost for every payment.
"""

import uuid
from typing import Tuple

from loguru import logger

from streampay.core.canonical import amount_to_wire
from streampay.core.emitter import EventLog
from streampay.core.exceptions import (
    CreatorInactive,
    InsufficientBalance,
    InvalidInput,
    NotRegistered,
    StreamPayError,
    TransferFailed,
)
from streampay.core.models import EventType
from streampay.ledger.records import PaymentReceipt, checked_amount
from streampay.ledger.store import LedgerStore
from streampay.registry.creators import CreatorRegistry
from streampay.settlement.params import PlatformParameters
from streampay.settlement.payout import PayoutRail


def split_cost(total_cost: int, fee_percentage: int) -> Tuple[int, int]:
    """Return (platform_fee, creator_earnings) for total_cost."""
    platform_fee = total_cost * fee_percentage // 100
    return platform_fee, total_cost - platform_fee


def _require_int(value, name: str, minimum: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
        raise InvalidInput(
            f"{name} must be an integer >= {minimum}",
            {name: value},
        )
    return value


class SettlementEngine:
    """
    Executes deposits and pay-per-second payments against the ledger store.

    Args:
        store:    Ledger store holding balances, earnings and watch time
        creators: Creator registry (pricing and active status)
        params:   Platform parameters (fee percentage)
        rail:     Payout rail receiving creator earnings
        events:   Event log receiving one entry per domain event
    """

    def __init__(
        self,
        store: LedgerStore,
        creators: CreatorRegistry,
        params: PlatformParameters,
        rail: PayoutRail,
        events: EventLog,
    ):
        self.store = store
        self.creators = creators
        self.params = params
        self.rail = rail
        self.events = events

    def deposit(self, viewer: str, amount: int) -> int:
        """
        Add amount to viewer's prepaid balance.

        Returns:
            The new balance
        """
        if not viewer:
            raise InvalidInput("Viewer identity must be non-empty")
        _require_int(amount, "amount", 1)

        with self.store.locked(viewer):
            new_balance = checked_amount(self.store.balance_of(viewer) + amount, "balance")
            self.events.emit(
                EventType.DEPOSITED,
                {
                    "viewer": viewer,
                    "amount": amount_to_wire(amount),
                    "balance": amount_to_wire(new_balance),
                },
                actor=viewer,
            )
            self.store.credit(viewer, amount)

        logger.info("Deposit: viewer={} amount={} balance={}", viewer, amount, new_balance)
        return new_balance

    def pay(
        self,
        viewer: str,
        creator: str,
        watch_seconds: int,
        attached_amount: int = 0,
    ) -> PaymentReceipt:
        """
        Settle watch_seconds of viewing from viewer to creator.

        attached_amount is value sent along with the call; it is credited to
        the viewer's balance before the cost is debited.

        Returns:
            PaymentReceipt with the cost split and the viewer's new balance

        Raises:
            NotRegistered, CreatorInactive, InvalidInput, Overflow,
            InsufficientBalance, TransferFailed
        """
        if not viewer:
            raise InvalidInput("Viewer identity must be non-empty")
        if not self.creators.is_registered(creator):
            raise NotRegistered("Creator not registered", {"identity": creator})

        with self.store.locked(viewer, creator):
            record = self.creators.get(creator)
            if not record.is_active:
                raise CreatorInactive("Creator is paused", {"creator": creator})

            _require_int(watch_seconds, "watch_seconds", 1)
            _require_int(attached_amount, "attached_amount", 0)

            total_cost = checked_amount(record.price_per_second * watch_seconds, "total_cost")
            fee_percentage = self.params.fee_percentage
            platform_fee, creator_earnings = split_cost(total_cost, fee_percentage)

            balance_before = self.store.balance_of(viewer)
            available = checked_amount(balance_before + attached_amount, "balance")
            if available < total_cost:
                logger.warning(
                    "Payment rejected: viewer={} creator={} cost={} available={}",
                    viewer, creator, total_cost, available,
                )
                raise InsufficientBalance(
                    "Balance cannot cover payment",
                    {"viewer": viewer, "available": available, "total_cost": total_cost},
                )

            earnings_before = self.store.earnings_of(creator)
            checked_amount(earnings_before + creator_earnings, "earnings")
            checked_amount(self.store.platform_fees + platform_fee, "platform fees")
            watch_before = self.store.watch_time(viewer, creator)
            payment_id = f"pay-{uuid.uuid4()}"

            try:
                if attached_amount > 0:
                    self.store.credit(viewer, attached_amount)
                new_balance = self.store.debit(viewer, total_cost)
                self.store.add_watch_time(viewer, creator, watch_seconds)
                self.store.add_earnings(creator, creator_earnings)
                self._payout(creator, creator_earnings, payment_id)
            except Exception:
                self.store.set_balance(viewer, balance_before)
                self.store.set_watch_time(viewer, creator, watch_before)
                self.store.set_earnings(creator, earnings_before)
                logger.warning(
                    "Payment rolled back: id={} viewer={} creator={}",
                    payment_id, viewer, creator,
                )
                raise
            self.store.accrue_fee(platform_fee)

            receipt = PaymentReceipt(
                viewer=viewer,
                creator=creator,
                watch_seconds=watch_seconds,
                total_cost=total_cost,
                platform_fee=platform_fee,
                creator_earnings=creator_earnings,
                fee_percentage=fee_percentage,
                attached_amount=attached_amount,
                viewer_balance=new_balance,
            )
            self._emit_payment(receipt, payment_id, balance_before)

        logger.info(
            "Payment processed: id={} viewer={} creator={} seconds={} cost={} fee={}",
            payment_id, viewer, creator, watch_seconds, total_cost, platform_fee,
        )
        return receipt

    def get_balance(self, viewer: str) -> int:
        """Prepaid balance; 0 for unknown viewers."""
        return self.store.balance_of(viewer)

    def get_watch_time(self, viewer: str, creator: str) -> int:
        """Cumulative seconds viewer has paid for on creator; 0 if none."""
        return self.store.watch_time(viewer, creator)

    # ── Internal ──────────────────────────────────────────────

    def _payout(self, creator: str, amount: int, payment_id: str) -> None:
        try:
            self.rail.transfer(creator, amount, payment_id)
        except TransferFailed:
            raise
        except Exception as exc:
            raise TransferFailed(
                f"Payout to creator failed: {exc}",
                {"creator": creator, "amount": amount, "payment_id": payment_id},
            ) from exc

    def _emit_payment(
        self,
        receipt: PaymentReceipt,
        payment_id: str,
        balance_before: int,
    ) -> None:
        """
        Append the payment's events. The payout has already happened, so a
        failure here cannot be rolled back; it is logged and re-raised.
        """
        try:
            if receipt.attached_amount > 0:
                self.events.emit(
                    EventType.DEPOSITED,
                    {
                        "viewer": receipt.viewer,
                        "amount": amount_to_wire(receipt.attached_amount),
                        "balance": amount_to_wire(balance_before + receipt.attached_amount),
                        "payment_id": payment_id,
                    },
                    actor=receipt.viewer,
                )
            self.events.emit(
                EventType.PAYMENT_PROCESSED,
                {
                    "payment_id": payment_id,
                    "viewer": receipt.viewer,
                    "creator": receipt.creator,
                    "total_cost": amount_to_wire(receipt.total_cost),
                    "watch_seconds": amount_to_wire(receipt.watch_seconds),
                    "platform_fee": amount_to_wire(receipt.platform_fee),
                    "fee_percentage": receipt.fee_percentage,
                },
                actor=receipt.viewer,
            )
            self.events.emit(
                EventType.CREATOR_PAID_OUT,
                {
                    "payment_id": payment_id,
                    "creator": receipt.creator,
                    "amount": amount_to_wire(receipt.creator_earnings),
                },
                actor=receipt.viewer,
            )
        except StreamPayError:
            logger.error(
                "Payment settled but events not recorded: id={} viewer={} creator={}",
                payment_id, receipt.viewer, receipt.creator,
            )
            raise

