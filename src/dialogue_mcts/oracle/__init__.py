"""Generation oracles consumed by the search engine."""

from dialogue_mcts.oracle.base import (
    Completion,
    GenerationOracle,
    LLMOracle,
    NEUTRAL_EVALUATION,
    TokenUsage,
)

__all__ = [
    "Completion",
    "GenerationOracle",
    "LLMOracle",
    "NEUTRAL_EVALUATION",
    "TokenUsage",
]
