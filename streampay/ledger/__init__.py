"""
StreamPay Ledger - balances, earnings, watch time and fee residue.

LedgerStore holds the mutable figures; records.py holds the value types
returned to callers.
"""

from streampay.ledger.records import MAX_AMOUNT, Creator, PaymentReceipt, Stream
from streampay.ledger.store import LedgerStore

__all__ = [
    "MAX_AMOUNT",
    "Creator",
    "Stream",
    "PaymentReceipt",
    "LedgerStore",
]
