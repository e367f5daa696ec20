"""
streampay/__init__.py

StreamPay: pay-per-second settlement ledger for live-stream viewing.

Creators register a price per second, viewers prepay a balance, and each
payment atomically debits the viewer, pays the creator minus a platform fee,
and records cumulative watch time. Every state change is written to a
signed, hash-chained event log that auditors can verify independently.
"""

__version__ = "0.1.0"

from streampay.core.crypto import Ed25519KeyManager
from streampay.core.emitter import EventLog
from streampay.core.exceptions import (
    AlreadyEnded,
    AlreadyRegistered,
    ConfigError,
    CreatorInactive,
    EventLogError,
    Forbidden,
    InsufficientBalance,
    InvalidInput,
    NothingToWithdraw,
    NotFound,
    NotRegistered,
    OutOfRange,
    Overflow,
    StreamPayError,
    TransferFailed,
)
from streampay.core.models import EventEnvelope, EventType, GENESIS_HASH
from streampay.core.replay import AuditReplay
from streampay.config import LedgerConfig
from streampay.ledger.records import MAX_AMOUNT, Creator, PaymentReceipt, Stream
from streampay.service import StreamPayService
from streampay.settlement.payout import InMemoryPayoutRail, PayoutRail

__all__ = [
    # Service
    "StreamPayService",
    "LedgerConfig",
    # Records
    "Creator",
    "Stream",
    "PaymentReceipt",
    # Event log
    "EventLog",
    "EventEnvelope",
    "EventType",
    "AuditReplay",
    "Ed25519KeyManager",
    # Payout
    "PayoutRail",
    "InMemoryPayoutRail",
    # Errors
    "StreamPayError",
    "InvalidInput",
    "AlreadyRegistered",
    "NotRegistered",
    "CreatorInactive",
    "Forbidden",
    "NotFound",
    "AlreadyEnded",
    "InsufficientBalance",
    "Overflow",
    "OutOfRange",
    "NothingToWithdraw",
    "TransferFailed",
    "EventLogError",
    "ConfigError",
    # Constants
    "MAX_AMOUNT",
    "GENESIS_HASH",
]
