"""
StreamPay Settlement Engine

Moves value for deposits and per-second payments.

Invariants:
- A viewer balance never goes negative
- fee + creator earnings == total cost for every payment
- A failed payout leaves every figure as it was before the call
"""

from streampay.settlement.engine import SettlementEngine, split_cost
from streampay.settlement.params import PlatformParameters
from streampay.settlement.payout import InMemoryPayoutRail, PayoutRail, Transfer

__all__ = [
    "SettlementEngine",
    "split_cost",
    "PlatformParameters",
    "PayoutRail",
    "InMemoryPayoutRail",
    "Transfer",
]
