"""
Terminal helpers shared by the CLI commands.
"""

import json
import sys

import click
from loguru import logger


class _Color:
    """
    Minimal ANSI color wrapper.
    Auto-disables when not a TTY or --no-color is passed.
    """
    _on: bool = True

    @classmethod
    def configure(cls, enabled: bool) -> None:
        cls._on = enabled and sys.stdout.isatty()

    @classmethod
    def green(cls, s: str) -> str:
        return f"\033[32m{s}\033[0m" if cls._on else s

    @classmethod
    def red(cls, s: str) -> str:
        return f"\033[31m{s}\033[0m" if cls._on else s

    @classmethod
    def yellow(cls, s: str) -> str:
        return f"\033[33m{s}\033[0m" if cls._on else s

    @classmethod
    def cyan(cls, s: str) -> str:
        return f"\033[36m{s}\033[0m" if cls._on else s

    @classmethod
    def bold(cls, s: str) -> str:
        return f"\033[1m{s}\033[0m" if cls._on else s

    @classmethod
    def dim(cls, s: str) -> str:
        return f"\033[2m{s}\033[0m" if cls._on else s


def _row_ok(label: str, value: str) -> str:
    label_col = _Color.dim(f"{label:<16}")
    return f"  {label_col}  {_Color.green('✅')}  {value}"

def _row_fail(label: str, value: str) -> str:
    label_col = _Color.dim(f"{label:<16}")
    return f"  {label_col}  {_Color.red('❌')}  {value}"

def _row_info(label: str, value: str) -> str:
    label_col = _Color.dim(f"{label:<16}")
    return f"  {label_col}     {_Color.dim(value)}"


def configure_logging(verbose: bool) -> None:
    """Route library logs to stderr; only warnings and above unless verbose."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def emit_error(command: str, msg: str, fmt: str, quiet: bool = False) -> None:
    """Emit error in the requested format. Never raises."""
    if quiet:
        return
    if fmt == "json":
        click.echo(json.dumps({
            f"streampay_{command}": {
                "error": msg,
                "valid": False,
            }
        }))
    else:
        click.echo(
            _Color.red(f"\n  ❌  ERROR: {msg}\n"),
            err=True,
        )
