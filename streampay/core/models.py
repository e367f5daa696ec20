"""
streampay/core/models.py

Event envelope, the single entry type of the StreamPay audit log.

An envelope is signed over every field but its signature:
    signature   = Ed25519(canonicalize(env.to_signing_dict())), base64url
    causal_hash = sha256 of the previous entry's signing bytes,
                  GENESIS_HASH for sequence 0

sequence orders the log; nonce (32 hex chars) only guards against replayed
entries. timestamp is UTC with millisecond precision and a Z suffix.
event_type must be one of the EventType constants: create() raises
ValueError otherwise, and validate_schema() reports it for loaded entries.
"""

import hashlib
import re
import secrets
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from streampay.core.canonical import canonicalize, unsafe_integer_path
from streampay.core.time import event_timestamp


LOG_VERSION  = "1.0"
GENESIS_HASH = "0" * 64

_NONCE_HEX_LENGTH      = 32
_PUBLIC_KEY_HEX_LENGTH = 64

_TIMESTAMP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$"
)


class EventType:
    """
    Domain event names written to the audit log.

    These are the only valid values for EventEnvelope.event_type.
    """
    CREATOR_REGISTERED      = "creator_registered"
    CREATOR_PAUSED          = "creator_paused"
    STREAM_STARTED          = "stream_started"
    STREAM_ENDED            = "stream_ended"
    DEPOSITED               = "deposited"
    PAYMENT_PROCESSED       = "payment_processed"
    CREATOR_PAID_OUT        = "creator_paid_out"
    PLATFORM_FEE_UPDATED    = "platform_fee_updated"
    PLATFORM_FEES_WITHDRAWN = "platform_fees_withdrawn"


VALID_EVENT_TYPES: Set[str] = {
    EventType.CREATOR_REGISTERED,
    EventType.CREATOR_PAUSED,
    EventType.STREAM_STARTED,
    EventType.STREAM_ENDED,
    EventType.DEPOSITED,
    EventType.PAYMENT_PROCESSED,
    EventType.CREATOR_PAID_OUT,
    EventType.PLATFORM_FEE_UPDATED,
    EventType.PLATFORM_FEES_WITHDRAWN,
}


@dataclass
class SchemaValidationResult:
    """
    Result of EventEnvelope.validate_schema().

    Returned, not raised, so callers can choose hard fail vs report.
    bool(result) is True iff valid.
    """
    valid:  bool
    errors: List[str]

    def __bool__(self) -> bool:
        return self.valid

    def __repr__(self) -> str:
        if self.valid:
            return "SchemaValidationResult(VALID)"
        return f"SchemaValidationResult(INVALID, errors={self.errors})"


@dataclass
class EventEnvelope:
    """One signed, hash-chained entry of the event log."""

    log_version:       str
    event_id:          str
    event_type:        str
    actor:             str
    signer_public_key: str
    sequence:          int
    nonce:             str
    timestamp:         str
    causal_hash:       str
    payload:           Dict[str, Any]
    signature:         Optional[str] = None

    @classmethod
    def create(
        cls,
        event_type:        str,
        actor:             str,
        signer_public_key: str,
        sequence:          int,
        payload:           Dict[str, Any],
        prev:              Optional["EventEnvelope"] = None,
    ) -> "EventEnvelope":
        """
        Create an unsigned envelope with the correct causal_hash.

        Call .sign(key_manager) immediately after:
            env = EventEnvelope.create(...).sign(key_manager)
        """
        if event_type not in VALID_EVENT_TYPES:
            raise ValueError(
                f"Invalid event_type '{event_type}'. "
                f"Valid: {sorted(VALID_EVENT_TYPES)}"
            )
        if not isinstance(payload, dict):
            raise TypeError(
                f"payload must be dict, got {type(payload).__name__}"
            )
        if not isinstance(sequence, int) or sequence < 0:
            raise ValueError(
                f"sequence must be non-negative int, got {sequence!r}"
            )

        return cls(
            log_version=       LOG_VERSION,
            event_id=          f"evt-{uuid.uuid4()}",
            event_type=        event_type,
            actor=             actor,
            signer_public_key= signer_public_key,
            sequence=          sequence,
            nonce=             secrets.token_hex(_NONCE_HEX_LENGTH // 2),
            timestamp=         event_timestamp(),
            causal_hash=       cls.compute_causal_hash(prev),
            payload=           payload,
            signature=         None,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventEnvelope":
        """
        Deserialize from a JSONL line dict.

        Trusts persisted data. Callers must call validate_schema() to check
        stored data integrity. A missing field raises KeyError.
        """
        return cls(
            log_version=       data["log_version"],
            event_id=          data["event_id"],
            event_type=        data["event_type"],
            actor=             data["actor"],
            signer_public_key= data["signer_public_key"],
            sequence=          data["sequence"],
            nonce=             data["nonce"],
            timestamp=         data["timestamp"],
            causal_hash=       data["causal_hash"],
            payload=           data.get("payload", {}),
            signature=         data.get("signature"),
        )

    def validate_schema(self) -> SchemaValidationResult:
        """Check every field against the envelope contracts."""
        errors: List[str] = []

        if self.log_version != LOG_VERSION:
            errors.append(
                f"log_version: expected '{LOG_VERSION}', got '{self.log_version}'"
            )

        if self.event_type not in VALID_EVENT_TYPES:
            errors.append(
                f"event_type '{self.event_type}' not in valid set: "
                f"{sorted(VALID_EVENT_TYPES)}"
            )

        if not isinstance(self.event_id, str) or not self.event_id.startswith("evt-"):
            errors.append(
                f"event_id must be a string starting with 'evt-', got {self.event_id!r}"
            )

        if not isinstance(self.actor, str) or not self.actor:
            errors.append("actor must be a non-empty string")

        if not _is_hex(self.signer_public_key, _PUBLIC_KEY_HEX_LENGTH):
            errors.append(
                f"signer_public_key must be exactly {_PUBLIC_KEY_HEX_LENGTH} hex chars"
            )

        if not isinstance(self.sequence, int) or self.sequence < 0:
            errors.append(
                f"sequence must be non-negative int, got {self.sequence!r}"
            )

        if not _is_hex(self.nonce, _NONCE_HEX_LENGTH):
            errors.append(
                f"nonce must be exactly {_NONCE_HEX_LENGTH} hex chars"
            )

        if not isinstance(self.timestamp, str) or not _TIMESTAMP_RE.match(self.timestamp):
            errors.append(
                f"timestamp {self.timestamp!r} does not match "
                f"YYYY-MM-DDTHH:MM:SS.mmmZ"
            )

        if not _is_hex(self.causal_hash, 64):
            errors.append("causal_hash must be 64 hex chars")

        if not isinstance(self.payload, dict):
            errors.append(
                f"payload must be dict, got {type(self.payload).__name__}"
            )
        else:
            unsafe = unsafe_integer_path(self.payload, "payload")
            if unsafe:
                errors.append(
                    f"{unsafe} is an integer outside the exactly representable "
                    f"range; amounts are decimal strings"
                )

        return SchemaValidationResult(valid=len(errors) == 0, errors=errors)

    # ── Canonical forms ───────────────────────────────────────

    def to_signing_dict(self) -> Dict[str, Any]:
        """All fields except signature. Signed, and hashed by the next entry."""
        return {
            "actor":             self.actor,
            "causal_hash":       self.causal_hash,
            "event_id":          self.event_id,
            "event_type":        self.event_type,
            "log_version":       self.log_version,
            "nonce":             self.nonce,
            "payload":           self.payload,
            "sequence":          self.sequence,
            "signer_public_key": self.signer_public_key,
            "timestamp":         self.timestamp,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Full serialization including signature. Used for JSONL persistence."""
        d = self.to_signing_dict().copy()
        d["signature"] = self.signature
        return d

    def canonical_bytes_for_signing(self) -> bytes:
        return canonicalize(self.to_signing_dict())

    # ── Chain ─────────────────────────────────────────────────

    @staticmethod
    def compute_causal_hash(prev: Optional["EventEnvelope"]) -> str:
        if prev is None:
            return GENESIS_HASH
        return hashlib.sha256(prev.canonical_bytes_for_signing()).hexdigest()

    def verify_chain(self, prev: Optional["EventEnvelope"]) -> bool:
        """True if causal_hash matches what prev dictates."""
        return self.causal_hash == EventEnvelope.compute_causal_hash(prev)

    def verify_sequence(self, expected: int) -> bool:
        return self.sequence == expected

    # ── Signing ───────────────────────────────────────────────

    def sign(self, key_manager) -> "EventEnvelope":
        """Sign in place. Returns self for chaining."""
        self.signature = key_manager.sign(self.canonical_bytes_for_signing())
        return self

    def verify_signature(self, override_public_key_hex: Optional[str] = None) -> bool:
        """
        Verify the Ed25519 signature over the current canonical bytes.

        Returns False for unsigned envelopes, any field mutated after
        signing, or a wrong key. Never raises.
        """
        if not self.signature:
            return False

        from streampay.core.crypto import Ed25519KeyManager

        pubkey_hex = override_public_key_hex or self.signer_public_key
        try:
            data = self.canonical_bytes_for_signing()
        except ValueError:
            return False
        return Ed25519KeyManager.verify_detached(data, self.signature, pubkey_hex)

    def is_signed(self) -> bool:
        return bool(self.signature)


def _is_hex(value: Any, length: int) -> bool:
    if not isinstance(value, str) or len(value) != length:
        return False
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return True
