"""
Record types held by the ledger store and the registries.

All amounts are integers in the smallest currency unit.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from streampay.core.exceptions import Overflow


# Widest amount the ledger represents (unsigned 256-bit).
MAX_AMOUNT = 2 ** 256 - 1


def checked_amount(value: int, what: str) -> int:
    """Return value, or raise Overflow if it does not fit in MAX_AMOUNT."""
    if value > MAX_AMOUNT:
        raise Overflow(f"{what} exceeds representable range", {"max": MAX_AMOUNT})
    return value


@dataclass
class Creator:
    """A registered creator. Zero-valued for unknown identities."""
    identity: str
    name: str = ""
    price_per_second: int = 0
    total_earnings: int = 0
    is_active: bool = False
    subscriber_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Stream:
    """A live-stream session. is_live flips to False exactly once."""
    stream_id: int
    creator: str
    title: str
    description: str
    start_time: datetime
    is_live: bool = True
    viewer_count: int = 0
    end_time: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "stream_id": self.stream_id,
            "creator": self.creator,
            "title": self.title,
            "description": self.description,
            "start_time": self.start_time.isoformat(),
            "is_live": self.is_live,
            "viewer_count": self.viewer_count,
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }


@dataclass(frozen=True)
class PaymentReceipt:
    """Outcome of a successful pay-per-second settlement."""
    viewer: str
    creator: str
    watch_seconds: int
    total_cost: int
    platform_fee: int
    creator_earnings: int
    fee_percentage: int
    attached_amount: int
    viewer_balance: int

    def to_dict(self) -> dict:
        return asdict(self)
