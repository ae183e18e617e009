"""
Generation oracle contract and the LLM-backed implementation of it.

The search engine never talks to a model directly. It consumes three async
operations: propose candidate replies, score priors over them, and
evaluate a state. Those calls are the engine's only suspension points.

LLMOracle turns any chat-completion backend into such an oracle. Subclasses
implement one method, ``complete``; prompting, parsing and the neutral
fallbacks on failure live here.
"""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Sequence

from dialogue_mcts.errors import OracleError, OracleParseError
from dialogue_mcts.state import DialogueState, EvaluationMetrics, Turn
from dialogue_mcts.utils.logging import LogLevel, log_event

NEUTRAL_EVALUATION = 0.5

_NUMBER = re.compile(r"[-+]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][-+]?\d+)?")

PRIOR_PROMPT = "Rate the following potential responses in terms of their appropriateness (0-1):{candidates}"

EVALUATION_PROMPT = """Evaluate this conversation on the following criteria:
1. Coherence (0-1)
2. Relevance (0-1)
3. Engagement (0-1)
Respond with three numbers separated by commas."""


@dataclass
class Completion:
    """Text returned by one completion call plus its token counts."""

    text: str
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass
class TokenUsage:
    """Running token totals across all successful completion calls."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    calls: int = 0

    def record(self, completion: Completion) -> None:
        self.prompt_tokens += completion.prompt_tokens
        self.completion_tokens += completion.completion_tokens
        self.calls += 1


class GenerationOracle(ABC):
    """Abstract source of candidate replies, priors and evaluations."""

    @abstractmethod
    async def propose_actions(self, state: DialogueState, count: int) -> List[str]:
        """Return up to ``count`` candidate next replies for ``state``."""

    @abstractmethod
    async def score_priors(self, state: DialogueState, actions: Sequence[str]) -> List[float]:
        """Return a probability for each action, summing to 1."""

    @abstractmethod
    async def evaluate(self, state: DialogueState) -> float:
        """Return the quality of ``state`` in [0, 1]."""


def softmax(scores: Sequence[float]) -> List[float]:
    """Numerically stable softmax."""
    top = max(scores)
    exps = [math.exp(s - top) for s in scores]
    total = sum(exps)
    return [e / total for e in exps]


def uniform(n: int) -> List[float]:
    return [1.0 / n] * n if n else []


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))

def parse_ratings(text: str, expected: int) -> List[float]:
    """
    Parse one rating per line, taking the last number on each line.

    Lines without a number are ignored, so "1. 0.8" and "0.8" both read as 0.8.
    Ratings are clamped into [0, 1], which also keeps overflowing values
    such as "1e999" finite.
    """
    ratings = []
    for line in text.splitlines():
        numbers = _NUMBER.findall(line)
        if numbers:
            ratings.append(_clamp(float(numbers[-1])))
    if len(ratings) != expected:
        raise OracleParseError(f"Expected {expected} ratings, got {len(ratings)}", text)
    return ratings


def parse_metrics(text: str) -> EvaluationMetrics:
    """Parse "coherence, relevance, engagement", clamping each into [0, 1]."""
    values = []
    for part in text.split(","):
        match = _NUMBER.search(part)
        if match:
            values.append(_clamp(float(match.group())))
    if len(values) < 3:
        raise OracleParseError(f"Expected 3 scores, got {len(values)}", text)
    coherence, relevance, engagement = values[:3]
    return EvaluationMetrics(coherence=coherence, relevance=relevance, engagement=engagement)


class LLMOracle(GenerationOracle):
    """
    Oracle backed by a chat-completion model.

    Args:
        temperature: Base sampling temperature for candidate replies; the
            i-th candidate is sampled at ``temperature + 0.1 * i``
        max_tokens: Output limit for candidate replies
        judge_temperature: Temperature for rating and evaluation calls
        judge_max_tokens: Output limit for rating and evaluation calls
    """

    def __init__(
        self,
        temperature: float = 0.8,
        max_tokens: int = 4096,
        judge_temperature: float = 0.1,
        judge_max_tokens: int = 256,
    ):
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.judge_temperature = judge_temperature
        self.judge_max_tokens = judge_max_tokens
        self.usage = TokenUsage()
        self.judgments: Dict[str, EvaluationMetrics] = {}

    @abstractmethod
    async def complete(
        self,
        system: str,
        messages: Sequence[Turn],
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        """
        Run one completion call.

        Implementations raise OracleTransportError when the provider fails.
        """

    async def _complete(
        self,
        system: str,
        messages: Sequence[Turn],
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        completion = await self.complete(system, messages, temperature, max_tokens)
        self.usage.record(completion)
        return completion

    async def propose_actions(self, state: DialogueState, count: int) -> List[str]:
        messages = state.messages()
        actions: List[str] = []
        for i in range(count):
            try:
                completion = await self._complete(
                    state.system_prompt,
                    messages,
                    temperature=self.temperature + i * 0.1,
                    max_tokens=self.max_tokens,
                )
            except OracleError as e:
                log_event("PROPOSE_FAILED", level=LogLevel.VERBOSE, collected=len(actions), error=e)
                break
            actions.append(completion.text)
        return actions

    async def score_priors(self, state: DialogueState, actions: Sequence[str]) -> List[float]:
        if not actions:
            return []
        candidates = "".join(f"\n{i + 1}. {a}" for i, a in enumerate(actions))
        messages = list(state.turns) + [Turn("user", PRIOR_PROMPT.format(candidates=candidates))]
        try:
            completion = await self._complete(
                state.system_prompt,
                messages,
                temperature=self.judge_temperature,
                max_tokens=self.judge_max_tokens,
            )
            return softmax(parse_ratings(completion.text, len(actions)))
        except OracleError as e:
            log_event("PRIORS_FALLBACK", level=LogLevel.VERBOSE, error=e)
            return uniform(len(actions))

    async def judge(self, state: DialogueState) -> EvaluationMetrics:
        """Ask the model for coherence, relevance and engagement of ``state``."""
        messages = list(state.turns) + [Turn("user", EVALUATION_PROMPT)]
        completion = await self._complete(
            state.system_prompt,
            messages,
            temperature=self.judge_temperature,
            max_tokens=self.judge_max_tokens,
        )
        return parse_metrics(completion.text)

    async def evaluate(self, state: DialogueState) -> float:
        try:
            metrics = await self.judge(state)
        except OracleError as e:
            log_event("EVALUATE_FALLBACK", level=LogLevel.VERBOSE, error=e)
            return NEUTRAL_EVALUATION
        self.judgments[state.hash()] = metrics
        return metrics.weighted

    def judged(self, state: DialogueState) -> DialogueState:
        """Return ``state`` carrying the metrics recorded when it was evaluated, if any."""
        metrics = self.judgments.get(state.hash())
        if metrics is None:
            return state
        return state.with_metrics(metrics)
