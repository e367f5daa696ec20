"""
streampay reconcile — rebuild ledger figures from an event log.

Folds every event in sequence order into viewer balances, creator
earnings, watch time and the platform fee residue. The log is verified
first; reconciling a log with violations exits 1 after printing figures,
or without figures when its amounts cannot be decoded.
"""

import json
import sys
from pathlib import Path

import click

from streampay.cli._output import _Color, _row_info, configure_logging, emit_error
from streampay.core.replay import AuditReplay


@click.command(name="reconcile")
@click.argument("log", type=click.Path(exists=False))
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
    help="Output format.",
)
@click.option("--no-color", is_flag=True, default=False, help="Disable ANSI color output.")
@click.option("--verbose", is_flag=True, default=False, help="Show debug logs on stderr.")
def reconcile_command(log: str, fmt: str, no_color: bool, verbose: bool) -> None:
    """
    Rebuild balances, earnings and fee residue from LOG.

    \b
    Examples:
      streampay reconcile .streampay/events/events.jsonl
      streampay reconcile events.jsonl --format json | jq .balances
    """
    _Color.configure(not no_color)
    configure_logging(verbose)

    replay = AuditReplay()
    try:
        replay.load(Path(log))
    except (FileNotFoundError, ValueError) as e:
        emit_error("reconcile", str(e), fmt)
        sys.exit(2)

    summary = replay.verify()
    try:
        figures = replay.reconcile()
    except (KeyError, ValueError) as e:
        emit_error("reconcile", f"Figures cannot be rebuilt: {e}", fmt)
        sys.exit(1)
    valid   = summary.chain_valid

    if fmt == "json":
        click.echo(json.dumps({
            "streampay_reconcile": {
                "log":             str(log),
                "valid":           valid,
                "violation_count": len(summary.violations),
                **figures.to_dict(),
            }
        }, indent=2))
        sys.exit(0 if valid else 1)

    click.echo()
    click.echo(_Color.bold("  StreamPay  ·  Reconciliation"))
    click.echo()
    click.echo(_row_info("Log", str(log)))
    click.echo(_row_info("Entries", f"{summary.total_entries:,}"))
    if figures.fee_percentage is not None:
        click.echo(_row_info("Fee", f"{figures.fee_percentage}%"))
    click.echo(_row_info("Fee residue", f"{figures.platform_fees:,}"))
    click.echo(_row_info("Fees withdrawn", f"{figures.fees_withdrawn:,}"))
    click.echo(_row_info("Creators", f"{len(figures.creators)} ({len(figures.paused)} paused)"))
    click.echo(_row_info("Live streams", ", ".join(map(str, figures.active_streams)) or "—"))
    click.echo()

    for viewer, balance in sorted(figures.balances.items()):
        click.echo(f"  {_Color.cyan('balance'):<10}  {viewer:<32}  {balance:>20,}")
    for creator, amount in sorted(figures.earnings.items()):
        click.echo(f"  {_Color.cyan('earnings'):<10}  {creator:<32}  {amount:>20,}")
    click.echo()

    if valid:
        click.echo(_Color.green("  ✅  figures derived from a valid event log"))
    else:
        click.echo(_Color.red(
            f"  ❌  event log has {len(summary.violations)} violation(s); figures are not trustworthy"
        ))
    click.echo()
    sys.exit(0 if valid else 1)
