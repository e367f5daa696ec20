"""
streampay/core/replay.py

Audit replay of a StreamPay event log.

Checks performed by verify(), per entry in sequence order:
    1. sequence   → strictly 0, 1, 2, ... with no gaps
    2. chain      → causal_hash matches the previous entry
    3. nonce      → no two entries share a nonce
    4. signature  → Ed25519 over the canonical signing dict

reconcile() then folds the domain events into the figures the live ledger
holds (viewer balances, creator earnings, watch time, fee residue), so an
auditor can compare them with what the operator reports.
"""

import json
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from streampay.core.canonical import amount_from_wire
from streampay.core.models import EventEnvelope, EventType


@dataclass
class ChainViolation:
    """A single detected violation in the log."""
    at_sequence:    int
    event_id:       str
    violation_type: str   # "chain_break" | "invalid_signature" | "sequence_gap" | "duplicate_nonce"
    detail:         str


@dataclass
class ReplaySummary:
    """Aggregate result of a full verification pass."""
    total_entries:      int
    chain_valid:        bool
    violations:         List[ChainViolation]
    valid_signatures:   int
    invalid_signatures: int
    event_type_counts:  Dict[str, int]
    signers_seen:       List[str]
    first_timestamp:    Optional[str]
    last_timestamp:     Optional[str]


@dataclass
class Reconciliation:
    """Ledger figures rebuilt from events."""
    balances:       Dict[str, int] = field(default_factory=dict)
    earnings:       Dict[str, int] = field(default_factory=dict)
    watch_time:     Dict[str, Dict[str, int]] = field(default_factory=dict)
    platform_fees:  int = 0
    fees_withdrawn: int = 0
    creators:       List[str] = field(default_factory=list)
    paused:         List[str] = field(default_factory=list)
    active_streams: List[int] = field(default_factory=list)
    fee_percentage: Optional[int] = None
    # Detail needed to rebuild a live ledger; not part of the audit report.
    creator_details: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    streams:         Dict[int, Dict[str, Any]] = field(default_factory=dict)
    last_stream_id:  int = 0

    def to_dict(self) -> dict:
        return {
            "balances":       dict(sorted(self.balances.items())),
            "earnings":       dict(sorted(self.earnings.items())),
            "watch_time":     {v: dict(sorted(c.items())) for v, c in sorted(self.watch_time.items())},
            "platform_fees":  self.platform_fees,
            "fees_withdrawn": self.fees_withdrawn,
            "creators":       list(self.creators),
            "paused":         list(self.paused),
            "active_streams": list(self.active_streams),
            "fee_percentage": self.fee_percentage,
        }


class AuditReplay:
    """
    Loads and audits an event log.

    Usage:
        replay = AuditReplay()
        replay.load(Path(".streampay/events/events.jsonl"))
        summary = replay.verify()
        figures = replay.reconcile()
    """

    def __init__(self, envelopes: Optional[List[EventEnvelope]] = None):
        self.envelopes:    List[EventEnvelope]  = list(envelopes or [])
        self.violations:   List[ChainViolation] = []
        self._log_path:    Optional[Path]       = None

    @property
    def log_path(self) -> Optional[Path]:
        return self._log_path

    # ── Load ──────────────────────────────────────────────────

    def load(self, log_path: Path) -> None:
        """
        Load a JSONL event log.

        Raises:
            FileNotFoundError — log file does not exist
            ValueError        — malformed JSON, missing field or schema violation
        """
        log_path        = Path(log_path)
        self._log_path  = log_path
        self.envelopes  = []
        self.violations = []

        if not log_path.exists():
            raise FileNotFoundError(f"Event log not found: {log_path}")

        with open(log_path, "r", encoding="utf-8") as f:
            for line_num, raw in enumerate(f, 1):
                raw = raw.strip()
                if not raw:
                    continue

                try:
                    data = json.loads(raw)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        f"Malformed JSON at log line {line_num}: {e}"
                    ) from e

                try:
                    env = EventEnvelope.from_dict(data)
                except KeyError as e:
                    raise ValueError(
                        f"Missing required field at line {line_num}: {e}"
                    ) from e

                schema = env.validate_schema()
                if not schema:
                    raise ValueError(
                        f"Schema violation at line {line_num} "
                        f"(event_id={data.get('event_id', '?')}): {schema.errors}"
                    )

                self.envelopes.append(env)

        self.envelopes.sort(key=lambda e: e.sequence)

    # ── Verify ────────────────────────────────────────────────

    def verify(self) -> ReplaySummary:
        """Full verification pass. Returns a summary with every violation."""
        self.violations = []

        if not self.envelopes:
            return ReplaySummary(
                total_entries=      0,
                chain_valid=        True,
                violations=         [],
                valid_signatures=   0,
                invalid_signatures= 0,
                event_type_counts=  {},
                signers_seen=       [],
                first_timestamp=    None,
                last_timestamp=     None,
            )

        seen_nonces: Set[str] = set()
        valid_sigs   = 0
        invalid_sigs = 0

        for i, env in enumerate(self.envelopes):
            prev = self.envelopes[i - 1] if i > 0 else None

            if not env.verify_sequence(i):
                self._violation(env, "sequence_gap", f"Expected sequence {i}, got {env.sequence}")

            if not env.verify_chain(prev):
                expected = EventEnvelope.compute_causal_hash(prev)
                self._violation(
                    env, "chain_break",
                    f"causal_hash mismatch: expected ...{expected[-12:]}, "
                    f"got ...{env.causal_hash[-12:]}",
                )

            if env.nonce in seen_nonces:
                self._violation(env, "duplicate_nonce", f"Nonce {env.nonce} already used")
            seen_nonces.add(env.nonce)

            if env.verify_signature():
                valid_sigs += 1
            else:
                invalid_sigs += 1
                self._violation(
                    env, "invalid_signature",
                    f"Signature invalid (signer: {env.signer_public_key[:16]}...)",
                )

        counts: Dict[str, int] = defaultdict(int)
        for env in self.envelopes:
            counts[env.event_type] += 1

        return ReplaySummary(
            total_entries=      len(self.envelopes),
            chain_valid=        len(self.violations) == 0,
            violations=         list(self.violations),
            valid_signatures=   valid_sigs,
            invalid_signatures= invalid_sigs,
            event_type_counts=  dict(counts),
            signers_seen=       sorted({e.signer_public_key for e in self.envelopes}),
            first_timestamp=    self.envelopes[0].timestamp,
            last_timestamp=     self.envelopes[-1].timestamp,
        )

    # ── Reconcile ─────────────────────────────────────────────

    def reconcile(self) -> Reconciliation:
        """
        Rebuild ledger figures by folding every event in order.

        Raises:
            ValueError: an amount field is not a decimal string
        """
        result = Reconciliation()
        paused: Set[str] = set()
        active: Set[int] = set()

        for env in self.envelopes:
            p = env.payload
            kind = env.event_type

            if kind == EventType.DEPOSITED:
                viewer = p["viewer"]
                result.balances[viewer] = result.balances.get(viewer, 0) + amount_from_wire(p["amount"])

            elif kind == EventType.PAYMENT_PROCESSED:
                viewer, creator = p["viewer"], p["creator"]
                result.balances[viewer] = result.balances.get(viewer, 0) - amount_from_wire(p["total_cost"])
                per_creator = result.watch_time.setdefault(viewer, {})
                per_creator[creator] = per_creator.get(creator, 0) + amount_from_wire(p["watch_seconds"])
                result.platform_fees += amount_from_wire(p["platform_fee"])

            elif kind == EventType.CREATOR_PAID_OUT:
                creator = p["creator"]
                result.earnings[creator] = result.earnings.get(creator, 0) + amount_from_wire(p["amount"])

            elif kind == EventType.PLATFORM_FEES_WITHDRAWN:
                amount = amount_from_wire(p["amount"])
                result.platform_fees  -= amount
                result.fees_withdrawn += amount

            elif kind == EventType.CREATOR_REGISTERED:
                result.creators.append(p["creator"])
                result.creator_details[p["creator"]] = {
                    "name":             p["name"],
                    "price_per_second": amount_from_wire(p["price_per_second"]),
                }

            elif kind == EventType.CREATOR_PAUSED:
                paused.add(p["creator"])

            elif kind == EventType.STREAM_STARTED:
                stream_id = p["stream_id"]
                active.add(stream_id)
                result.last_stream_id = max(result.last_stream_id, stream_id)
                result.streams[stream_id] = {
                    "creator":     p["creator"],
                    "title":       p["title"],
                    "description": p.get("description", ""),
                    "start_time":  env.timestamp,
                    "end_time":    None,
                }

            elif kind == EventType.STREAM_ENDED:
                active.discard(p["stream_id"])
                if p["stream_id"] in result.streams:
                    result.streams[p["stream_id"]]["end_time"] = env.timestamp

            elif kind == EventType.PLATFORM_FEE_UPDATED:
                result.fee_percentage = p["percentage"]

        result.paused = sorted(paused)
        result.active_streams = sorted(active)
        return result

    # ── Export ────────────────────────────────────────────────

    def export_json(self, output_path: Path) -> None:
        """Write the verification summary and reconciliation as a JSON report."""
        if not self.envelopes:
            raise RuntimeError("No envelopes loaded. Call load() before export_json().")

        summary     = self.verify()
        try:
            reconciliation = self.reconcile().to_dict()
        except (KeyError, ValueError) as e:
            reconciliation = {"error": f"Figures cannot be rebuilt: {e}"}
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        report = {
            "streampay_audit_report": {
                "log":                str(self._log_path or "in-memory"),
                "total_entries":      summary.total_entries,
                "chain_valid":        summary.chain_valid,
                "valid_signatures":   summary.valid_signatures,
                "invalid_signatures": summary.invalid_signatures,
                "first_timestamp":    summary.first_timestamp,
                "last_timestamp":     summary.last_timestamp,
                "event_type_counts":  summary.event_type_counts,
                "violations": [
                    {
                        "at_sequence":    v.at_sequence,
                        "event_id":       v.event_id,
                        "violation_type": v.violation_type,
                        "detail":         v.detail,
                    }
                    for v in summary.violations
                ],
                "reconciliation": reconciliation,
            }
        }

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2)

    # ── Internal ──────────────────────────────────────────────

    def _violation(self, env: EventEnvelope, violation_type: str, detail: str) -> None:
        self.violations.append(ChainViolation(
            at_sequence=    env.sequence,
            event_id=       env.event_id,
            violation_type= violation_type,
            detail=         detail,
        ))
