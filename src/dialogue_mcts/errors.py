"""Exception types raised by the dialogue MCTS engine and its oracles."""

from __future__ import annotations


class DialogueMCTSError(Exception):
    """Base class for all errors raised by this package."""


class OracleError(DialogueMCTSError):
    """A generation oracle call could not produce a usable answer."""


class OracleTransportError(OracleError):
    """The provider call itself failed (network, quota, SDK error)."""


class OracleParseError(OracleError):
    """The provider answered, but the text could not be parsed."""

    def __init__(self, message: str, text: str = ""):
        super().__init__(message)
        self.text = text
