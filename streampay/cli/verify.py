"""
streampay/cli/verify.py

streampay verify — event log verification
=========================================

Usage:
    streampay verify <log>                       Human output (default)
    streampay verify <log> --format json         Machine-readable JSON
    streampay verify <log> --format compact      One-line pipeline output
    streampay verify <log> --export report.json  Export full audit report
    streampay verify <log> --quiet               Exit code only
    streampay verify <log> --no-color            Disable ANSI

Exit codes:
    0  Log fully valid  (sequence + chain + nonces + signatures)
    1  Log has violations
    2  Error  (file missing, malformed JSON, schema failure)
"""

import json
import sys
import time
from pathlib import Path
from typing import Optional

import click

from streampay.cli._output import (
    _Color,
    _row_fail,
    _row_info,
    _row_ok,
    configure_logging,
    emit_error,
)
from streampay.core.models import EventEnvelope
from streampay.core.replay import AuditReplay, ReplaySummary


def _chain_head(replay: AuditReplay) -> Optional[str]:
    """The causal_hash the next entry appended to this log would carry."""
    if not replay.envelopes:
        return None
    return EventEnvelope.compute_causal_hash(replay.envelopes[-1])


@click.command(name="verify")
@click.argument("log", type=click.Path(exists=False))
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json", "compact"], case_sensitive=False),
    default="human",
    show_default=True,
    help="Output format: human (default), json (CI/automation), compact (pipelines).",
)
@click.option(
    "--export",
    "export_path",
    type=click.Path(),
    default=None,
    metavar="PATH",
    help="Export full audit report (verification + reconciliation) to a JSON file.",
)
@click.option(
    "--quiet",
    is_flag=True,
    default=False,
    help="Suppress all output. Use exit code only (0=valid, 1=invalid, 2=error).",
)
@click.option(
    "--no-color",
    is_flag=True,
    default=False,
    help="Disable ANSI color output.",
)
@click.option(
    "--verbose",
    is_flag=True,
    default=False,
    help="Show debug logs on stderr.",
)
def verify_command(
    log:         str,
    fmt:         str,
    export_path: Optional[str],
    quiet:       bool,
    no_color:    bool,
    verbose:     bool,
) -> None:
    """
    Verify a StreamPay event log.

    LOG is the path to an events.jsonl file.

    \b
    Examples:
      streampay verify .streampay/events/events.jsonl
      streampay verify events.jsonl --format json
      streampay verify events.jsonl --export report.json
      streampay verify events.jsonl --quiet && echo "clean"
    """
    _Color.configure(not no_color)
    configure_logging(verbose)

    log_path = Path(log)
    if not log_path.exists():
        emit_error("verify", f"Event log not found: {log}", fmt, quiet)
        sys.exit(2)

    replay  = AuditReplay()
    t_start = time.perf_counter()

    try:
        replay.load(log_path)
    except (FileNotFoundError, ValueError) as e:
        emit_error("verify", str(e), fmt, quiet)
        sys.exit(2)

    summary   = replay.verify()
    elapsed   = time.perf_counter() - t_start
    head_hash = _chain_head(replay)
    log_valid = len(summary.violations) == 0

    if export_path:
        try:
            replay.export_json(Path(export_path))
        except (OSError, RuntimeError) as e:
            if not quiet and fmt == "human":
                click.echo(_Color.yellow(f"\n  ⚠️   Export failed: {e}"), err=True)

    if quiet:
        sys.exit(0 if log_valid else 1)

    if fmt == "json":
        _output_json(summary, log_path, elapsed, head_hash, export_path, log_valid)
    elif fmt == "compact":
        _output_compact(summary, log_path, elapsed, log_valid)
    else:
        _output_human(summary, log_path, elapsed, head_hash, export_path, log_valid)

    sys.exit(0 if log_valid else 1)


# ── Human output ──────────────────────────────────────────────────────────────

def _output_human(
    summary:     ReplaySummary,
    log_path:    Path,
    elapsed:     float,
    head_hash:   Optional[str],
    export_path: Optional[str],
    log_valid:   bool,
) -> None:
    BAR_HEAVY = "═" * 68
    BAR_LIGHT = "─" * 68

    click.echo()
    click.echo(_Color.bold(f"  {BAR_HEAVY}"))
    click.echo(_Color.bold(  "  StreamPay  ·  Event Log Verification"))
    click.echo(_Color.bold(f"  {BAR_HEAVY}"))
    click.echo()

    total = summary.total_entries
    click.echo(_row_info("Log",     str(log_path)))
    click.echo(_row_info("Entries", f"{total:,}"))
    click.echo(_row_info("Signers", ", ".join(k[:16] + "..." for k in summary.signers_seen) or "—"))
    click.echo()

    by_type = {}
    for v in summary.violations:
        by_type.setdefault(v.violation_type, []).append(v)

    if "sequence_gap" in by_type:
        click.echo(_row_fail("Sequence", _Color.red(f"{len(by_type['sequence_gap'])} gap(s) detected")))
    elif total > 0:
        click.echo(_row_ok("Sequence", f"0 → {total - 1:,}  (no gaps)"))
    else:
        click.echo(_row_ok("Sequence", "empty log"))

    if "chain_break" in by_type:
        click.echo(_row_fail("Chain", _Color.red(f"{len(by_type['chain_break'])} break(s) detected")))
    else:
        click.echo(_row_ok("Chain", "intact — all causal hashes valid"))

    if "duplicate_nonce" in by_type:
        click.echo(_row_fail("Nonces", _Color.red(f"{len(by_type['duplicate_nonce'])} duplicate(s)")))
    else:
        click.echo(_row_ok("Nonces", "unique"))

    if summary.invalid_signatures == 0:
        click.echo(_row_ok("Signatures", f"{summary.valid_signatures:,} / {total:,} valid"))
    else:
        click.echo(_row_fail(
            "Signatures",
            f"{summary.valid_signatures:,} valid  "
            + _Color.red(f"{summary.invalid_signatures:,} INVALID"),
        ))

    click.echo()

    if summary.first_timestamp:
        click.echo(_row_info("First entry", summary.first_timestamp))
    if summary.last_timestamp:
        click.echo(_row_info("Last entry", summary.last_timestamp))
    if head_hash:
        click.echo(_row_info("Chain Head", _Color.cyan(head_hash[:16] + "..." + head_hash[-8:])))

    if summary.event_type_counts:
        counts_str = "  ".join(
            f"{_Color.cyan(k)}: {v:,}"
            for k, v in sorted(summary.event_type_counts.items())
        )
        click.echo(_row_info("Event types", counts_str))

    click.echo(_row_info("Verified", f"{elapsed:.3f}s"))
    if export_path:
        click.echo(_row_info("Exported", export_path))
    click.echo()

    if summary.violations:
        click.echo(f"  {BAR_LIGHT}")
        for v in summary.violations:
            type_col = _Color.yellow(f"{v.violation_type:<18}")
            click.echo(f"  {_Color.red(str(v.at_sequence)):>6}  {type_col}  {v.detail}")
        click.echo(f"  {BAR_LIGHT}")
        click.echo()

    click.echo(f"  {BAR_LIGHT}")
    if log_valid:
        click.echo(_Color.green(_Color.bold(
            "  ✅  VALID  ·  0 violations  ·  event log integrity confirmed"
        )))
    else:
        click.echo(_Color.red(_Color.bold(
            f"  ❌  INVALID  ·  {len(summary.violations)} violation(s)  ·  event log integrity compromised"
        )))
    click.echo(f"  {BAR_LIGHT}")
    click.echo()


# ── JSON output ───────────────────────────────────────────────────────────────

def _output_json(
    summary:     ReplaySummary,
    log_path:    Path,
    elapsed:     float,
    head_hash:   Optional[str],
    export_path: Optional[str],
    log_valid:   bool,
) -> None:
    out = {
        "streampay_verify": {
            "log":                str(log_path),
            "total_entries":      summary.total_entries,
            "valid":              log_valid,
            "chain_valid":        summary.chain_valid,
            "chain_head_hash":    head_hash,
            "valid_signatures":   summary.valid_signatures,
            "invalid_signatures": summary.invalid_signatures,
            "violation_count":    len(summary.violations),
            "signers_seen":       summary.signers_seen,
            "event_type_counts":  summary.event_type_counts,
            "first_timestamp":    summary.first_timestamp,
            "last_timestamp":     summary.last_timestamp,
            "elapsed_seconds":    round(elapsed, 3),
            "export_path":        export_path,
            "violations": [
                {
                    "at_sequence":    v.at_sequence,
                    "event_id":       v.event_id,
                    "violation_type": v.violation_type,
                    "detail":         v.detail,
                }
                for v in summary.violations
            ],
        }
    }
    click.echo(json.dumps(out, indent=2))


# ── Compact output ────────────────────────────────────────────────────────────

def _output_compact(
    summary:   ReplaySummary,
    log_path:  Path,
    elapsed:   float,
    log_valid: bool,
) -> None:
    """
    Single-line output for shell pipelines and audit logs.

    Format:
        VALID     events.jsonl   1,204 entries  0 violations  0.081s
    """
    status = "VALID" if log_valid else "INVALID"
    color  = _Color.green if log_valid else _Color.red
    click.echo(
        color(f"{status:<8}")
        + f"  {log_path.name:<30}  {summary.total_entries:>10,} entries  "
        + f"{len(summary.violations)} violations  {elapsed:.3f}s"
    )
