"""
StreamPay Exception Hierarchy

All exceptions inherit from StreamPayError for easy catching.
Every error is raised before any state is mutated, except TransferFailed,
which is raised after the settlement engine has rolled back its own writes.
"""


class StreamPayError(Exception):
    """Base exception for all StreamPay errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class InvalidInput(StreamPayError):
    """Raised when arguments are malformed (empty names, non-positive amounts)"""
    pass


class AlreadyRegistered(StreamPayError):
    """Raised when an identity registers as a creator twice"""
    pass


class NotRegistered(StreamPayError):
    """Raised when an operation targets an unknown creator"""
    pass


class CreatorInactive(StreamPayError):
    """Raised when an operation targets a paused creator"""
    pass


class Forbidden(StreamPayError):
    """Raised when the caller is not authorized for the resource"""
    pass


class NotFound(StreamPayError):
    """Raised when a stream id does not exist"""
    pass


class AlreadyEnded(StreamPayError):
    """Raised when ending a stream that is no longer live"""
    pass


class InsufficientBalance(StreamPayError):
    """Raised when balance plus attached value cannot cover the cost"""
    pass


class Overflow(StreamPayError):
    """Raised when an amount exceeds MAX_AMOUNT"""
    pass


class OutOfRange(StreamPayError):
    """Raised when the platform fee percentage is outside [0, 10]"""
    pass


class NothingToWithdraw(StreamPayError):
    """Raised when the platform fee residue is zero"""
    pass


class TransferFailed(StreamPayError):
    """Raised when the payout rail rejects a transfer"""
    pass


class EventLogError(StreamPayError):
    """Raised when the event log cannot be written or restored"""
    pass


class ConfigError(StreamPayError):
    """Raised when a configuration file is missing or invalid"""
    pass
