"""
Logging and console output for the dialogue MCTS engine.

Everything the engine reports goes through ``log_event``, which formats a
tag plus ``key=value`` pairs and is gated by one process-wide verbosity.
Search events and the levels they are emitted at:

- MCTS_START / MCTS_DONE: VERBOSE
- SIM nnn (one per finished simulation): VERBOSE
- EXPAND: DEBUG
- PROPOSE_FAILED, PRIORS_FALLBACK, EVALUATE_FALLBACK: VERBOSE
- SIMULATION_FAILED: MINIMAL (emitted as a warning)

The ``print_*`` helpers write user-facing CLI output to the same console.
"""

from __future__ import annotations

import logging
import sys
from enum import IntEnum
from typing import Any, Iterable, Mapping

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

_console = Console(force_terminal=True, legacy_windows=True, safe_box=True)


class LogLevel(IntEnum):
    """Log verbosity levels."""
    SILENT = 0
    MINIMAL = 1
    NORMAL = 2
    VERBOSE = 3
    DEBUG = 4


# Threshold of the package logger for each verbosity
_LOGGER_THRESHOLDS = {
    LogLevel.SILENT: logging.CRITICAL + 1,
    LogLevel.MINIMAL: logging.WARNING,
    LogLevel.NORMAL: logging.INFO,
    LogLevel.VERBOSE: logging.DEBUG,
    LogLevel.DEBUG: logging.DEBUG,
}

_verbosity = LogLevel.NORMAL
_logger: logging.Logger | None = None


def set_verbosity(level: LogLevel | str | int) -> None:
    """
    Set the global verbosity level.

    Accepts a LogLevel, its name in any case ("verbose"), or its integer value.
    """
    global _verbosity

    if isinstance(level, str):
        level = LogLevel[level.upper()]
    else:
        level = LogLevel(level)

    _verbosity = level
    if _logger:
        _logger.setLevel(_LOGGER_THRESHOLDS[level])


def get_verbosity() -> LogLevel:
    """Get the current verbosity level."""
    return _verbosity


def get_logger(name: str = "dialogue_mcts") -> logging.Logger:
    """Get the package logger, attaching its rich handler on first use."""
    global _logger

    if _logger is None:
        _logger = logging.getLogger(name)
        _logger.handlers.clear()

        # markup is off: replies and errors are arbitrary text
        handler = RichHandler(
            console=_console,
            show_time=True,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        _logger.addHandler(handler)
        _logger.setLevel(_LOGGER_THRESHOLDS[_verbosity])

    return _logger


def _format_event(event: str, details: Mapping[str, Any]) -> str:
    if not details:
        return f"[{event}]"
    return f"[{event}] " + " | ".join(f"{k}={v}" for k, v in details.items())


def log_event(
    event: str,
    level: LogLevel = LogLevel.NORMAL,
    **kwargs: Any,
) -> None:
    """Log an event with optional structured data."""
    if _verbosity < level:
        return

    logger = get_logger()
    message = _format_event(event, kwargs)

    if level <= LogLevel.MINIMAL:
        logger.warning(message)
    elif level == LogLevel.NORMAL:
        logger.info(message)
    else:
        logger.debug(message)


def log_simulation(
    index: int,
    value: float,
    path_length: int,
    tree_size: int,
    **extra: Any,
) -> None:
    """Log the outcome of one simulation (verbose level)."""
    log_event(
        f"SIM {index:03d}",
        level=LogLevel.VERBOSE,
        value=f"{value:.3f}",
        path=path_length,
        nodes=tree_size,
        **extra,
    )


def _printable(text: str) -> str:
    """Make ``text`` safe for the console's encoding (legacy Windows consoles)."""
    encoding = getattr(sys.stdout, "encoding", None) or "utf-8"
    return text.encode(encoding, errors="replace").decode(encoding)


def print_header(title: str) -> None:
    """Print a styled header."""
    if _verbosity >= LogLevel.MINIMAL:
        _console.print()
        _console.rule(f"[bold blue]{title}[/bold blue]", align="left", style="blue")
        _console.print()


def print_candidates(children: Iterable[Mapping[str, Any]], width: int = 60) -> None:
    """Print a table of root children as returned by SearchResult.child_stats()."""
    if _verbosity < LogLevel.VERBOSE:
        return

    table = Table(title="Root candidates", show_lines=False)
    table.add_column("visits", justify="right")
    table.add_column("value", justify="right")
    table.add_column("prior", justify="right")
    table.add_column("reply")

    for child in children:
        reply = " ".join(str(child["action"]).split())
        if len(reply) > width:
            reply = reply[: width - 3] + "..."
        table.add_row(
            str(child["visits"]),
            f"{child['value']:.3f}",
            f"{child['prior']:.2f}",
            _printable(reply),
        )
    _console.print(table)


def print_result(reply: str, **stats: Any) -> None:
    """Print the chosen reply followed by one line of search statistics."""
    if _verbosity < LogLevel.MINIMAL:
        return

    _console.print()
    _console.print("[bold green]Best reply[/bold green]")
    _console.rule(style="dim")
    _console.print(_printable(reply), markup=False, highlight=False)
    _console.rule(style="dim")
    if stats:
        _console.print(" | ".join(f"{k}: {v}" for k, v in stats.items()), style="dim", markup=False)
    _console.print()
