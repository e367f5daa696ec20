"""
streampay/cli/__init__.py

StreamPay CLI — root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    streampay = "streampay.cli:cli"

Each command lives in its own module under streampay/cli/ and is attached
here with cli.add_command().
"""

import click

from streampay.cli.reconcile import reconcile_command
from streampay.cli.verify import verify_command


@click.group()
@click.version_option(package_name="streampay")
def cli() -> None:
    """
    StreamPay — settlement ledger audit tools.

    \b
    Commands:
      verify     Verify an event log: sequence, chain, nonces, signatures.
      reconcile  Rebuild balances, earnings and fee residue from events.

    \b
    Quick start:
      streampay verify .streampay/events/events.jsonl
      streampay verify events.jsonl --format json
      streampay verify events.jsonl --quiet && echo "clean"
      streampay reconcile events.jsonl --format json
    """
    pass


cli.add_command(verify_command)
cli.add_command(reconcile_command)
