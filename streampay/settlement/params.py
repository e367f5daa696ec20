"""
Process-wide platform parameters: owner identity and fee percentage.

Read by every settlement, written only through the admin controller.
"""

import threading

from streampay.core.exceptions import InvalidInput, OutOfRange


MIN_PLATFORM_FEE     = 0
MAX_PLATFORM_FEE     = 10
DEFAULT_PLATFORM_FEE = 5


def validate_fee_percentage(percentage: int) -> int:
    if not isinstance(percentage, int) or isinstance(percentage, bool):
        raise InvalidInput(
            "Platform fee percentage must be an integer",
            {"percentage": percentage},
        )
    if not MIN_PLATFORM_FEE <= percentage <= MAX_PLATFORM_FEE:
        raise OutOfRange(
            f"Platform fee must be between {MIN_PLATFORM_FEE} and {MAX_PLATFORM_FEE}",
            {"percentage": percentage},
        )
    return percentage


class PlatformParameters:
    """Single guarded value holding the owner and the current fee."""

    def __init__(self, owner: str, fee_percentage: int = DEFAULT_PLATFORM_FEE) -> None:
        if not owner:
            raise InvalidInput("Platform owner identity must be non-empty")
        self._owner = owner
        self._fee_percentage = validate_fee_percentage(fee_percentage)
        self._lock = threading.Lock()

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def fee_percentage(self) -> int:
        with self._lock:
            return self._fee_percentage

    def replace_fee(self, percentage: int) -> int:
        """Set a new fee and return the previous one."""
        validate_fee_percentage(percentage)
        with self._lock:
            previous = self._fee_percentage
            self._fee_percentage = percentage
            return previous

    def is_owner(self, identity: str) -> bool:
        return identity == self._owner
