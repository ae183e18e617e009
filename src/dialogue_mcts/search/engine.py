"""
Dialogue Monte Carlo Tree Search - Core Algorithm.

This module searches the space of assistant replies to a query. A
generation oracle proposes candidate replies, rates them, and judges
conversation quality. The engine spends a fixed number of simulations
building a tree over those replies and returns the reply at the root that
was visited most.

=============================================================================
THE FOUR PHASES OF ONE SIMULATION
=============================================================================

1. SELECTION: From the root, descend while the node is non-terminal, fully
   expanded and has children, picking the child with the best PUCT/RAVE
   score. Every visited node goes on the path.

2. EXPANSION: At a non-terminal frontier node that has not been expanded,
   ask the oracle for up to ``max_children`` replies and their priors, and
   attach one child per reply (reusing nodes through the transposition
   table). The first child goes on the path.

3. ROLLOUT: From the last node on the path, play up to ``rollout_depth``
   random replies, judging each new state and accumulating the judgments
   with a 0.95 per-step discount. The value is the average over the steps
   played.

4. BACKPROPAGATION: Add the value to every node on the path, leaf to root
   (and to the RAVE statistics of the same nodes when RAVE is on).

=============================================================================
SELECTION SCORE
=============================================================================

    score = beta * value + (1 - beta) * rave_average + exploration

    exploration = C * prior * sqrt(parent_visits) / (1 + child_visits)
    beta        = child_visits / (child_visits + rave_visits + 4 * prior * parent_visits)

beta moves weight from the RAVE estimate to the direct average as a child
collects visits of its own.

=============================================================================
CONCURRENCY
=============================================================================

Simulations are asyncio tasks on one event loop. Oracle calls are the only
awaits, so code between them runs without interleaving:

- Expansion holds the node's lock across its oracle calls and re-checks
  ``is_fully_expanded`` once the lock is acquired. A simulation that finds
  the node already expanded descends into the existing children instead.
- Backpropagation contains no await and is applied in one step.
- A failing simulation is logged and counted; the others keep running.
"""

from __future__ import annotations

import asyncio
import math
import random
from dataclasses import asdict, dataclass, field
from typing import List, Optional, Tuple

from dialogue_mcts.config import SearchConfig
from dialogue_mcts.oracle.base import GenerationOracle, uniform
from dialogue_mcts.search.node import SearchNode
from dialogue_mcts.search.tree import SearchTree
from dialogue_mcts.state import DialogueState
from dialogue_mcts.utils.logging import LogLevel, log_event, log_simulation

ROLLOUT_DISCOUNT = 0.95
CLOSING_PHRASES = ("goodbye", "thank you")


def is_terminal(state: DialogueState, max_depth: int) -> bool:
    """A state is terminal at the depth cutoff or when the query closes the conversation."""
    if state.depth >= max_depth:
        return True
    query = state.query.lower()
    return any(phrase in query for phrase in CLOSING_PHRASES)


def exploration_term(c: float, prior: float, parent_visits: int, child_visits: int) -> float:
    """PUCT exploration bonus."""
    return c * prior * math.sqrt(parent_visits) / (1 + child_visits)


def puct_score(child: SearchNode, parent_visits: int, prior: float, c: float) -> float:
    """Selection score blending direct statistics, RAVE statistics and exploration."""
    denominator = child.visits + child.rave_visits + 4 * prior * parent_visits
    beta = child.visits / denominator if denominator > 0 else 0.0
    return (
        beta * child.value
        + (1 - beta) * child.rave_average
        + exploration_term(c, prior, parent_visits, child.visits)
    )


@dataclass
class SearchResult:
    """
    Result from a dialogue MCTS search.

    Attributes:
        action: Reply of the most visited root child ("" if the root never got children)
        tree: The full search tree (inspectable until discarded)
        simulations: Number of simulations launched
        failed_simulations: Simulations that ended with an exception
        completion_tokens: Completion tokens the oracle reported during this
            search, or None if the oracle does not track usage
        history: One entry per finished simulation
    """

    action: str
    tree: SearchTree
    simulations: int
    failed_simulations: int = 0
    completion_tokens: Optional[int] = None
    history: List[dict] = field(default_factory=list)

    @property
    def root(self) -> SearchNode:
        return self.tree.root

    def child_stats(self) -> List[dict]:
        """Visit statistics and recorded evaluation metrics of each root child, in creation order."""
        children = self.tree.children(self.root)
        return [
            {
                "action": child.action,
                "visits": child.visits,
                "value": child.value,
                "prior": self.tree.prior(child, len(children)),
                "metrics": asdict(child.state.metrics) if child.state.metrics else None,
            }
            for child in children
        ]


class SearchEngine:
    """
    Monte Carlo Tree Search over dialogue replies.

    How it works:
    1. You provide an initial DialogueState (system prompt + query)
    2. Simulations select, expand, roll out and backpropagate concurrently
    3. Every expensive step is a call to the GenerationOracle
    4. You get back the root reply with the most visits

    Example:
        >>> oracle = GeminiOracle(model="gemini-2.5-flash")
        >>> engine = SearchEngine(oracle, SearchConfig(max_children=3), rng=random.Random(0))
        >>> state = DialogueState.create("You are a helpful assistant.", "How do I learn Rust?")
        >>> reply = engine.search(state, num_simulations=10, rollout_depth=3)
    """

    def __init__(
        self,
        oracle: GenerationOracle,
        config: SearchConfig | None = None,
        rng: random.Random | None = None,
    ):
        """
        Initialize the engine.

        Args:
            oracle: Source of candidate replies, priors and evaluations
            config: Default search configuration. Uses defaults if None.
            rng: Random generator for rollout sampling. Seed it for
                reproducible searches.
        """
        self.oracle = oracle
        self.config = config or SearchConfig()
        self.rng = rng or random.Random()

    def search(
        self,
        initial_state: DialogueState,
        num_simulations: int,
        rollout_depth: int,
        config: SearchConfig | None = None,
    ) -> str:
        """
        Run a search and return the best first reply ("" if none was found).

        Must not be called from a running event loop; use ``search_async`` there.
        """
        return self.run(initial_state, num_simulations, rollout_depth, config).action

    async def search_async(
        self,
        initial_state: DialogueState,
        num_simulations: int,
        rollout_depth: int,
        config: SearchConfig | None = None,
    ) -> str:
        result = await self.run_async(initial_state, num_simulations, rollout_depth, config)
        return result.action

    def run(
        self,
        initial_state: DialogueState,
        num_simulations: int,
        rollout_depth: int,
        config: SearchConfig | None = None,
    ) -> SearchResult:
        """Run a search and return the full SearchResult."""
        return asyncio.run(self.run_async(initial_state, num_simulations, rollout_depth, config))

    async def run_async(
        self,
        initial_state: DialogueState,
        num_simulations: int,
        rollout_depth: int,
        config: SearchConfig | None = None,
    ) -> SearchResult:
        """
        Run ``num_simulations`` simulations from ``initial_state``.

        Raises:
            ValueError: If ``num_simulations`` or ``rollout_depth`` is negative
            pydantic.ValidationError: If the configuration is invalid
        """
        if num_simulations < 0:
            raise ValueError(f"num_simulations must be >= 0, got {num_simulations}")
        if rollout_depth < 0:
            raise ValueError(f"rollout_depth must be >= 0, got {rollout_depth}")
        # Fields may have been assigned after construction, so validate again.
        cfg = SearchConfig.model_validate((config or self.config).model_dump())

        log_event(
            "MCTS_START",
            level=LogLevel.VERBOSE,
            simulations=num_simulations,
            rollout_depth=rollout_depth,
            max_depth=cfg.max_depth,
            max_children=cfg.max_children,
        )

        usage = getattr(self.oracle, "usage", None)
        tokens_before = usage.completion_tokens if usage is not None else 0

        tree = SearchTree(initial_state)
        history: List[dict] = []
        semaphore = asyncio.Semaphore(cfg.max_concurrency)

        async def bounded(index: int) -> float:
            async with semaphore:
                value, path_length = await self._simulate(tree, cfg, rollout_depth)
            history.append({
                "simulation": index,
                "value": value,
                "path_length": path_length,
                "tree_size": len(tree),
            })
            log_simulation(index, value, path_length, len(tree))
            return value

        outcomes = await asyncio.gather(
            *(bounded(i) for i in range(num_simulations)),
            return_exceptions=True,
        )

        failed = 0
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, Exception):
                failed += 1
                log_event("SIMULATION_FAILED", level=LogLevel.MINIMAL, simulation=index, error=repr(outcome))
            elif isinstance(outcome, BaseException):
                raise outcome

        # Attach recorded evaluation metrics to the node states; the hash ignores them
        judged = getattr(self.oracle, "judged", None)
        if judged is not None:
            for node in tree:
                node.state = judged(node.state)

        action = self.best_action(tree)
        completion_tokens = usage.completion_tokens - tokens_before if usage is not None else None

        log_event(
            "MCTS_DONE",
            level=LogLevel.VERBOSE,
            root_visits=tree.root.visits,
            nodes=len(tree),
            failed=failed,
            found=bool(action),
        )

        return SearchResult(
            action=action,
            tree=tree,
            simulations=num_simulations,
            failed_simulations=failed,
            completion_tokens=completion_tokens,
            history=history,
        )

    async def _simulate(
        self,
        tree: SearchTree,
        cfg: SearchConfig,
        rollout_depth: int,
    ) -> Tuple[float, int]:
        """Run one select-expand-rollout-backpropagate pass. Returns (value, path length)."""
        path, marked = self._select(tree, cfg)
        try:
            leaf = path[-1]
            if not is_terminal(leaf.state, cfg.max_depth) and not leaf.is_fully_expanded:
                child = await self._expand(tree, leaf, cfg)
                if child is not None:
                    path.append(child)
            value = await self._rollout(path[-1].state, rollout_depth, cfg)
            self._backpropagate(path, value, cfg)
        finally:
            tree.in_progress.difference_update(marked)
        return value, len(path)

    def _select(self, tree: SearchTree, cfg: SearchConfig) -> Tuple[List[SearchNode], List[str]]:
        """
        SELECTION PHASE: Walk down the tree by PUCT/RAVE score.

        Returns the path (root first) and the state hashes marked as in progress.
        """
        node = tree.root
        path = [node]
        marked = []
        while (
            not is_terminal(node.state, cfg.max_depth)
            and node.is_fully_expanded
            and node.children
        ):
            state_hash = node.state.hash()
            tree.in_progress.add(state_hash)
            marked.append(state_hash)
            node = self._best_child(tree, node, cfg)
            path.append(node)
        return path, marked

    def _best_child(self, tree: SearchTree, node: SearchNode, cfg: SearchConfig) -> SearchNode:
        """Child with the highest selection score; ties go to the earliest child."""
        children = tree.children(node)
        return max(
            children,
            key=lambda child: puct_score(
                child,
                node.visits,
                tree.prior(child, len(children)),
                cfg.exploration_constant,
            ),
        )

    async def _expand(
        self,
        tree: SearchTree,
        node: SearchNode,
        cfg: SearchConfig,
    ) -> Optional[SearchNode]:
        """
        EXPANSION PHASE: Attach the oracle's candidate replies under ``node``.

        Runs at most once per node. Returns the node to append to the path:
        the first child if this call expanded the node, the best existing
        child if another simulation got there first, or None if the node has
        no children.
        """
        async with tree.lock_for(node):
            if not node.is_fully_expanded:
                actions = await self.oracle.propose_actions(node.state, cfg.max_children)
                actions = list(actions)[:cfg.max_children]
                priors = await self.oracle.score_priors(node.state, actions) if actions else []
                if len(priors) != len(actions):
                    priors = uniform(len(actions))

                for action, prior in zip(actions, priors):
                    child_state = node.state.with_turn("assistant", action)
                    tree.add_child(node, child_state, action, prior)
                node.is_fully_expanded = True

                log_event(
                    "EXPAND",
                    level=LogLevel.DEBUG,
                    node=node.index,
                    depth=node.depth,
                    children=len(node.children),
                )
                if not node.children:
                    return None
                return tree.node(node.children[0])

        if not node.children:
            return None
        return self._best_child(tree, node, cfg)

    async def _rollout(
        self,
        state: DialogueState,
        rollout_depth: int,
        cfg: SearchConfig,
    ) -> float:
        """
        ROLLOUT PHASE: Estimate the value of ``state`` by random play.

        Each step samples among the first ``max(1, floor(sqrt(step + 1)))``
        candidates (progressive widening). If no step could be played, the
        start state itself is evaluated. Returning 0 there instead would give
        every child at the depth cutoff the same value, and the search could
        not tell a good terminal reply from a bad one.
        """
        current = state
        total = 0.0
        steps = 0
        while steps < rollout_depth and not is_terminal(current, cfg.max_depth):
            actions = await self.oracle.propose_actions(current, cfg.max_children)
            if not actions:
                break

            width = max(1, math.isqrt(steps + 1))
            action = self.rng.choice(list(actions)[:width])
            current = current.with_turn("assistant", action)

            evaluation = await self.oracle.evaluate(current)
            total += evaluation * ROLLOUT_DISCOUNT ** steps
            steps += 1

        if steps == 0:
            return await self.oracle.evaluate(state)
        return total / steps

    def _backpropagate(self, path: List[SearchNode], value: float, cfg: SearchConfig) -> None:
        """
        BACKPROPAGATION PHASE: Add ``value`` to every node on the path, leaf first.

        RAVE statistics are updated for the same nodes only, not for every
        reply seen during the rollout.
        """
        for node in reversed(path):
            node.update(value)
            if cfg.use_rave:
                node.update_rave(value)

    @staticmethod
    def best_action(tree: SearchTree) -> str:
        """Reply of the most visited root child, earliest child on ties."""
        best: Optional[SearchNode] = None
        for child in tree.children(tree.root):
            if best is None or child.visits > best.visits:
                best = child
        if best is None:
            return ""
        return best.action or ""
