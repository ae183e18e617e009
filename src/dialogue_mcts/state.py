"""
Immutable dialogue state searched over by the MCTS engine.

A state is a conversation prefix: the turns produced so far, the system
instruction, the user query being answered and the depth (number of turns
appended since the root). Every transition builds a new state; nothing is
mutated in place, which lets concurrent simulations share states freely.

The structural hash is the transposition key. It covers exactly
(turns, query, depth) and is computed from a length-prefixed byte encoding,
so two states hash equal if and only if those fields are equal.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field, replace
from typing import Iterable, Literal, Optional, Tuple

Role = Literal["user", "assistant"]

_ROLES = ("user", "assistant")


@dataclass(frozen=True)
class Turn:
    """One message in the conversation."""

    role: Role
    text: str

    def __post_init__(self):
        if self.role not in _ROLES:
            raise ValueError(f"Turn role must be one of {_ROLES}, got {self.role!r}")


@dataclass(frozen=True)
class EvaluationMetrics:
    """Judged quality of a conversation, each component in [0, 1]."""

    coherence: float
    relevance: float
    engagement: float

    @property
    def weighted(self) -> float:
        """Weighted average used as the rollout evaluation."""
        return 0.3 * self.coherence + 0.4 * self.relevance + 0.3 * self.engagement


@dataclass(frozen=True)
class DialogueState:
    """
    A point in the dialogue search space.

    Attributes:
        system_prompt: System instruction sent with every oracle call
        query: The active user query
        turns: Conversation turns produced so far
        depth: Number of turns appended since the root state
        metrics: Optional evaluation record (not part of identity)

    Example:
        >>> root = DialogueState.create("Be concise.", "How do I reverse a list?")
        >>> child = root.with_turn("assistant", "Use reversed() or slicing.")
        >>> child.depth
        1
        >>> root.hash() == child.hash()
        False
    """

    system_prompt: str
    query: str
    turns: Tuple[Turn, ...] = ()
    depth: int = 0
    metrics: Optional[EvaluationMetrics] = field(default=None, compare=False)

    @classmethod
    def create(
        cls,
        system_prompt: str,
        query: str,
        history: Iterable[Turn] = (),
    ) -> "DialogueState":
        """Build a root state from a system prompt, a query and optional prior turns."""
        return cls(system_prompt=system_prompt, query=query, turns=tuple(history))

    def with_turn(self, role: Role, text: str) -> "DialogueState":
        """Return a new state with one turn appended and depth incremented."""
        return replace(self, turns=self.turns + (Turn(role, text),), depth=self.depth + 1)

    def with_metrics(self, metrics: EvaluationMetrics) -> "DialogueState":
        """Return a copy of this state carrying an evaluation record."""
        return replace(self, metrics=metrics)

    @property
    def last_response(self) -> Optional[str]:
        """Text of the final turn if it came from the assistant."""
        if self.turns and self.turns[-1].role == "assistant":
            return self.turns[-1].text
        return None

    def messages(self) -> list[Turn]:
        """Conversation as sent to the oracle: the turns, then the query as a user turn."""
        return list(self.turns) + [Turn("user", self.query)]

    def hash(self) -> str:
        """Canonical structural digest of (turns, query, depth)."""
        digest = hashlib.sha256()

        def put(text: str) -> None:
            raw = text.encode("utf-8")
            digest.update(len(raw).to_bytes(8, "big"))
            digest.update(raw)

        digest.update(len(self.turns).to_bytes(8, "big"))
        for turn in self.turns:
            put(turn.role)
            put(turn.text)
        put(self.query)
        digest.update(self.depth.to_bytes(8, "big", signed=True))
        return digest.hexdigest()

    def __repr__(self) -> str:
        return f"DialogueState(depth={self.depth}, turns={len(self.turns)}, query={self.query[:30]!r})"
