"""Deterministic oracles shared by the test modules."""

import asyncio
from collections import Counter
from typing import Callable, Dict, List, Optional, Sequence

from dialogue_mcts.oracle.base import Completion, GenerationOracle, LLMOracle, uniform
from dialogue_mcts.state import Turn


class StubOracle(GenerationOracle):
    """
    Deterministic oracle for engine tests.

    Proposes a fixed list of actions, returns fixed priors, and scores a
    state by the text of its latest turn.
    """

    def __init__(
        self,
        actions: Sequence[str] = ("A", "B"),
        priors: Optional[Sequence[float]] = None,
        scores: Optional[Dict[str, float]] = None,
        default_score: float = 0.5,
        yield_control: bool = False,
    ):
        self.actions = list(actions)
        self.priors = list(priors) if priors is not None else None
        self.scores = scores or {}
        self.default_score = default_score
        self.yield_control = yield_control
        self.calls = Counter()
        self.propose_states: List[str] = []

    async def _maybe_yield(self):
        if self.yield_control:
            await asyncio.sleep(0)

    async def propose_actions(self, state, count):
        self.calls["propose"] += 1
        self.propose_states.append(state.hash())
        await self._maybe_yield()
        return self.actions[:count]

    async def score_priors(self, state, actions):
        self.calls["priors"] += 1
        await self._maybe_yield()
        if self.priors is not None:
            return self.priors[:len(actions)]
        return uniform(len(actions))

    async def evaluate(self, state):
        self.calls["evaluate"] += 1
        await self._maybe_yield()
        return self.scores.get(state.last_response, self.default_score)


class FakeLLMOracle(LLMOracle):
    """LLMOracle whose completions come from a Python callable."""

    def __init__(self, responder: Callable[[str, List[Turn], float, int], Completion], **kwargs):
        super().__init__(**kwargs)
        self.responder = responder
        self.requests: List[dict] = []

    async def complete(self, system, messages, temperature, max_tokens):
        self.requests.append({
            "system": system,
            "messages": list(messages),
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        return self.responder(system, list(messages), temperature, max_tokens)


