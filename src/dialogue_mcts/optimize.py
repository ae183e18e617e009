"""
Simple interface for dialogue MCTS.

``mcts()`` runs one search with the default search settings and
returns the chosen reply together with the completion tokens the oracle
spent producing it.
"""

from __future__ import annotations

import random
from typing import Tuple

from dialogue_mcts.config import SearchConfig
from dialogue_mcts.oracle.base import GenerationOracle
from dialogue_mcts.search.engine import SearchEngine
from dialogue_mcts.state import DialogueState


def mcts(
    oracle: GenerationOracle,
    prompt: str,
    system: str = "",
    num_simulations: int = 10,
    simulation_depth: int = 5,
    config: SearchConfig | None = None,
    seed: int | None = None,
) -> Tuple[str, int]:
    """
    Find the best reply to ``prompt`` by Monte Carlo Tree Search.

    Args:
        oracle: Generation oracle (e.g. GeminiOracle)
        prompt: The user query to answer
        system: System prompt sent with every oracle call
        num_simulations: Number of MCTS simulations
        simulation_depth: Maximum rollout length per simulation
        config: Search configuration (max_depth=10, max_children=3,
            exploration_constant=1.5, use_rave=True if None)
        seed: Seed for rollout sampling

    Returns:
        (reply, completion_tokens). The reply is "" if the oracle never
        produced a candidate; completion_tokens is 0 for oracles that do not
        track usage.

    Example:
        >>> reply, tokens = mcts(GeminiOracle(), "How should I structure a PhD thesis?")
    """
    engine = SearchEngine(oracle, config=config, rng=random.Random(seed))
    state = DialogueState.create(system, prompt)
    result = engine.run(state, num_simulations=num_simulations, rollout_depth=simulation_depth)
    return result.action, result.completion_tokens or 0
