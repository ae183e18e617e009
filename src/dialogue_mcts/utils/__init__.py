"""Utility modules for the dialogue MCTS engine."""

from dialogue_mcts.utils.logging import get_logger, set_verbosity, LogLevel, log_event

__all__ = [
    "get_logger",
    "set_verbosity",
    "LogLevel",
    "log_event",
]
