"""
streampay/core/emitter.py

Event Log — the append-only audit trail of the ledger.

emit() MUST, in this exact order:
  1. Acquire lock
  2. Call EventEnvelope.create(event_type, actor, signer_public_key,
                               sequence, payload, prev=last_envelope)
  3. Call envelope.sign(key_manager)
  4. Assert chain invariants  — causal_hash, sequence
  5. Append to JSONL file     — skipped for in-memory logs
  6. Advance internal state   — only after confirmed write
  7. Return signed envelope

Settlement operations call emit() while still holding their record locks,
so the order of entries matches the order in which conflicting operations
were serialized.
"""

import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from streampay.core.crypto import Ed25519KeyManager
from streampay.core.exceptions import EventLogError
from streampay.core.models import EventEnvelope, GENESIS_HASH, LOG_VERSION


class EventLog:
    """
    Signed, hash-chained, append-only event log.

    With a log_path the log is persisted as <log_path>/events.jsonl and its
    state survives a restart by replaying that file on __init__.
    Without one, entries are kept in memory only.

    Thread-safe via internal lock (single process only).
    """

    FILE_NAME = "events.jsonl"

    def __init__(
        self,
        key_manager: Ed25519KeyManager,
        log_path:    Optional[str] = None,
        actor:       str = "streampay",
    ) -> None:
        self.key_manager = key_manager
        self.actor       = actor

        self._lock:          threading.Lock          = threading.Lock()
        self._sequence:      int                     = 0
        self._last_envelope: Optional[EventEnvelope] = None
        self._entries:       List[EventEnvelope]     = []

        self._log_file: Optional[Path] = None
        if log_path is not None:
            log_dir = Path(log_path)
            log_dir.mkdir(parents=True, exist_ok=True)
            self._log_file = log_dir / self.FILE_NAME
            self._restore_state()

    @property
    def log_file(self) -> Optional[Path]:
        return self._log_file

    # ── Public API ────────────────────────────────────────────

    def emit(
        self,
        event_type: str,
        payload:    Dict[str, Any],
        actor:      Optional[str] = None,
    ) -> EventEnvelope:
        """
        Append one signed event.

        Raises EventLogError on any invariant violation or write failure.
        The log's state does not advance when this raises.
        """
        with self._lock:
            envelope = EventEnvelope.create(
                event_type=        event_type,
                actor=             actor or self.actor,
                signer_public_key= self.key_manager.public_key_hex,
                sequence=          self._sequence,
                payload=           payload,
                prev=              self._last_envelope,
            ).sign(self.key_manager)

            self._assert_chain_invariants(envelope)

            if self._log_file is not None:
                self._append_to_file(envelope)

            self._sequence      += 1
            self._last_envelope  = envelope
            self._entries.append(envelope)

            logger.debug(
                "Event appended: seq={} type={} actor={}",
                envelope.sequence, envelope.event_type, envelope.actor,
            )
            return envelope

    def entries(self, event_type: Optional[str] = None) -> List[EventEnvelope]:
        """Snapshot of appended entries, optionally filtered by type."""
        with self._lock:
            if event_type is None:
                return list(self._entries)
            return [e for e in self._entries if e.event_type == event_type]

    def __len__(self) -> int:
        return self._sequence

    def verify_chain(self) -> bool:
        """
        Verify sequence, causal hashes and signatures of every entry
        currently held by this log. Returns False on the first violation.
        """
        entries = self.entries()
        for i, env in enumerate(entries):
            prev = entries[i - 1] if i > 0 else None
            if not env.verify_sequence(i):
                return False
            if not env.verify_chain(prev):
                return False
            if not env.verify_signature():
                return False
        return True

    def get_stats(self) -> Dict[str, Any]:
        """Return current log state snapshot."""
        with self._lock:
            return {
                "next_sequence":    self._sequence,
                "last_event_id":    (
                    self._last_envelope.event_id
                    if self._last_envelope else None
                ),
                "last_causal_hash": (
                    EventEnvelope.compute_causal_hash(self._last_envelope)
                    if self._last_envelope else GENESIS_HASH
                ),
                "log_file":         str(self._log_file) if self._log_file else None,
                "log_version":      LOG_VERSION,
            }

    # ── Internal ──────────────────────────────────────────────

    def _restore_state(self) -> None:
        """
        Reload entries from an existing log file.
        Called once at construction. Safe on empty or missing file.
        A corrupted line raises EventLogError: appending after a
        damaged tail would chain new entries onto unknown state.
        """
        if not self._log_file.exists():
            return

        with open(self._log_file, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    env = EventEnvelope.from_dict(json.loads(stripped))
                except (json.JSONDecodeError, KeyError) as exc:
                    raise EventLogError(
                        f"Cannot restore event log: bad entry at line {line_num}",
                        {"file": self._log_file, "error": exc},
                    ) from exc
                schema = env.validate_schema()
                if not schema:
                    raise EventLogError(
                        f"Cannot restore event log: schema violation at line {line_num}",
                        {"errors": schema.errors},
                    )
                self._entries.append(env)

        if self._entries:
            self._last_envelope = self._entries[-1]
            self._sequence      = self._last_envelope.sequence + 1
            logger.info(
                "Event log restored: file={} entries={}",
                self._log_file, len(self._entries),
            )

    def _assert_chain_invariants(self, envelope: EventEnvelope) -> None:
        if not envelope.verify_sequence(self._sequence):
            raise EventLogError(
                "Chain invariant violated: sequence mismatch",
                {"expected": self._sequence, "got": envelope.sequence},
            )
        if not envelope.verify_chain(self._last_envelope):
            raise EventLogError(
                "Chain invariant violated: causal_hash mismatch",
                {"sequence": envelope.sequence},
            )

    def _append_to_file(self, envelope: EventEnvelope) -> None:
        """Append one signed envelope as a newline-terminated JSON line."""
        try:
            with open(self._log_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(envelope.to_dict()) + "\n")
        except OSError as exc:
            raise EventLogError(
                f"Event log write failed: {exc}",
                {"file": self._log_file},
            ) from exc
