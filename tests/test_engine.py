"""
Tests for the dialogue MCTS engine.

These tests verify:
1. Terminal detection and the PUCT/RAVE selection score
2. Rollout widening, discounting and the zero-step evaluation
3. Backpropagation and RAVE bookkeeping
4. End-to-end searches against deterministic oracles
"""

import asyncio
import random

import pytest
from pydantic import ValidationError

from dialogue_mcts import mcts
from dialogue_mcts.config import SearchConfig
from dialogue_mcts.errors import OracleTransportError
from dialogue_mcts.oracle.base import EVALUATION_PROMPT, Completion
from dialogue_mcts.search.engine import (
    SearchEngine,
    exploration_term,
    is_terminal,
    puct_score,
)
from dialogue_mcts.search.node import SearchNode
from dialogue_mcts.state import DialogueState

from helpers import FakeLLMOracle, StubOracle


def run_rollout(engine, state, depth, config):
    return asyncio.run(engine._rollout(state, depth, config))


# =============================================================================
# TERMINAL PREDICATE TESTS
# =============================================================================

class TestIsTerminal:
    def test_depth_cutoff(self):
        state = DialogueState("sys", "How are you?", depth=3)
        assert is_terminal(state, max_depth=3)
        assert is_terminal(state, max_depth=2)
        assert not is_terminal(state, max_depth=4)

    def test_closing_phrase_at_depth_zero(self):
        assert is_terminal(DialogueState.create("sys", "Ok, goodbye!"), max_depth=10)
        assert is_terminal(DialogueState.create("sys", "THANK YOU for the help"), max_depth=10)

    def test_ordinary_query(self):
        assert not is_terminal(DialogueState.create("sys", "Tell me more"), max_depth=10)


# =============================================================================
# SELECTION SCORE TESTS
# =============================================================================

class TestSelectionScore:
    def test_exploration_increases_with_parent_visits(self):
        values = [exploration_term(1.5, 0.5, n, 2) for n in range(1, 20)]
        assert values == sorted(values)
        assert len(set(values)) == len(values)

    def test_exploration_decreases_with_child_visits(self):
        values = [exploration_term(1.5, 0.5, 16, n) for n in range(0, 20)]
        assert values == sorted(values, reverse=True)

    def test_exploration_scales_with_prior_and_constant(self):
        assert exploration_term(1.5, 0.8, 9, 1) > exploration_term(1.5, 0.2, 9, 1)
        assert exploration_term(3.0, 0.5, 9, 1) > exploration_term(1.5, 0.5, 9, 1)
        assert exploration_term(0.0, 0.5, 9, 1) == 0.0

    def test_exploration_value(self):
        assert exploration_term(1.5, 0.5, 4, 1) == pytest.approx(1.5 * 0.5 * 2 / 2)

    def test_beta_zero_denominator(self, root_state):
        child = SearchNode(index=1, state=root_state, parent=0, action="x")
        assert puct_score(child, parent_visits=0, prior=0.0, c=1.5) == 0.0

    def test_unvisited_child_uses_rave_average(self, root_state):
        child = SearchNode(index=1, state=root_state, parent=0, action="x")
        child.update_rave(0.8)
        child.update_rave(0.8)
        # beta is 0 without direct visits, so the score is rave_average + exploration
        assert puct_score(child, parent_visits=4, prior=0.5, c=1.5) == pytest.approx(0.8 + 1.5)

    def test_blend(self, root_state):
        child = SearchNode(index=1, state=root_state, parent=0, action="x")
        child.update(1.0)
        child.update_rave(0.0)
        beta = 1 / (1 + 1 + 4 * 0.5 * 1)
        expected = beta * 1.0 + (1 - beta) * 0.0 + 1.5 * 0.5 * 1 / 2
        assert puct_score(child, parent_visits=1, prior=0.5, c=1.5) == pytest.approx(expected)


# =============================================================================
# ROLLOUT TESTS
# =============================================================================

class TestRollout:
    def test_single_step_always_takes_first_candidate(self, root_state):
        oracle = StubOracle(actions=["first", "second", "third"], scores={"first": 1.0}, default_score=0.0)
        config = SearchConfig(max_children=3)
        for seed in range(20):
            engine = SearchEngine(oracle, config, rng=random.Random(seed))
            assert run_rollout(engine, root_state, 1, config) == 1.0

    def test_widening_limits_candidates(self, root_state):
        # Eight steps widen to at most two candidates, so "c" is never sampled.
        oracle = StubOracle(
            actions=["a", "b", "c"],
            scores={"a": 1.0, "b": 1.0, "c": -100.0},
        )
        config = SearchConfig(max_depth=20, max_children=3)
        for seed in range(20):
            engine = SearchEngine(oracle, config, rng=random.Random(seed))
            assert run_rollout(engine, root_state, 8, config) > 0

    def test_discounted_average(self, root_state):
        oracle = StubOracle(actions=["x"], default_score=1.0)
        config = SearchConfig(max_depth=20)
        engine = SearchEngine(oracle, config, rng=random.Random(0))

        value = run_rollout(engine, root_state, 3, config)

        assert value == pytest.approx((1 + 0.95 + 0.95 ** 2) / 3)
        assert value == pytest.approx(0.950833, abs=1e-6)
        assert oracle.calls["evaluate"] == 3

    def test_stops_at_terminal_depth(self, root_state):
        oracle = StubOracle(actions=["x"], default_score=1.0)
        config = SearchConfig(max_depth=2)
        engine = SearchEngine(oracle, config, rng=random.Random(0))

        value = run_rollout(engine, root_state, 5, config)

        assert oracle.calls["evaluate"] == 2
        assert value == pytest.approx((1 + 0.95) / 2)

    def test_zero_steps_evaluates_start_state(self, root_state):
        oracle = StubOracle(scores={"A": 1.0})
        config = SearchConfig()
        engine = SearchEngine(oracle, config, rng=random.Random(0))
        start = root_state.with_turn("assistant", "A")

        assert run_rollout(engine, start, 0, config) == 1.0
        assert oracle.calls["propose"] == 0

    def test_zero_steps_when_oracle_has_nothing(self, root_state):
        oracle = StubOracle(actions=[], default_score=0.25)
        config = SearchConfig()
        engine = SearchEngine(oracle, config, rng=random.Random(0))

        assert run_rollout(engine, root_state, 5, config) == 0.25
        assert oracle.calls["propose"] == 1
        assert oracle.calls["evaluate"] == 1


# =============================================================================
# BACKPROPAGATION TESTS
# =============================================================================

class TestBackpropagation:
    def test_updates_whole_path(self, root_state):
        engine = SearchEngine(StubOracle())
        path = [
            SearchNode(index=0, state=root_state),
            SearchNode(index=1, state=root_state.with_turn("assistant", "a"), parent=0, action="a"),
        ]
        engine._backpropagate(path, 0.6, SearchConfig())

        for node in path:
            assert node.visits == 1
            assert node.value == pytest.approx(0.6)
            assert node.rave_visits == 1
            assert node.rave_average == pytest.approx(0.6)

    def test_rave_off(self, root_state):
        engine = SearchEngine(StubOracle())
        node = SearchNode(index=0, state=root_state)
        engine._backpropagate([node], 0.6, SearchConfig(use_rave=False))
        assert node.visits == 1
        assert node.rave_visits == 0

    def test_rave_only_along_selection_path(self, root_state, ab_oracle):
        config = SearchConfig(max_depth=3, max_children=2)
        engine = SearchEngine(ab_oracle, config, rng=random.Random(0))
        result = engine.run(root_state, num_simulations=15, rollout_depth=2)

        for node in result.tree:
            assert node.rave_visits == node.visits


# =============================================================================
# SEARCH TESTS
# =============================================================================

class TestSearchEngine:
    def test_prefers_better_action(self, root_state, ab_oracle, shallow_config):
        engine = SearchEngine(ab_oracle, shallow_config, rng=random.Random(0))
        result = engine.run(root_state, num_simulations=20, rollout_depth=1)

        assert result.action == "A"
        stats = {s["action"]: s for s in result.child_stats()}
        assert stats["A"]["visits"] > stats["B"]["visits"]
        assert stats["A"]["value"] == pytest.approx(1.0)
        assert result.root.visits == 20

    def test_search_returns_string(self, root_state, ab_oracle, shallow_config):
        engine = SearchEngine(ab_oracle, shallow_config, rng=random.Random(0))
        assert engine.search(root_state, num_simulations=20, rollout_depth=1) == "A"

    def test_search_async(self, root_state, ab_oracle, shallow_config):
        engine = SearchEngine(ab_oracle, shallow_config, rng=random.Random(0))
        reply = asyncio.run(engine.search_async(root_state, 20, 1))
        assert reply == "A"

    def test_empty_oracle(self, root_state):
        oracle = StubOracle(actions=[])
        engine = SearchEngine(oracle, SearchConfig(), rng=random.Random(0))
        result = engine.run(root_state, num_simulations=5, rollout_depth=3)

        assert result.action == ""
        assert result.root.children == []
        assert result.root.is_fully_expanded
        assert result.root.visits == 5
        assert len(result.tree) == 1

    def test_zero_simulations(self, root_state, ab_oracle):
        engine = SearchEngine(ab_oracle)
        result = engine.run(root_state, num_simulations=0, rollout_depth=3)
        assert result.action == ""
        assert sum(ab_oracle.calls.values()) == 0

    def test_terminal_root_is_never_expanded(self, ab_oracle):
        state = DialogueState.create("sys", "That's all, thank you!")
        engine = SearchEngine(ab_oracle, rng=random.Random(0))
        result = engine.run(state, num_simulations=4, rollout_depth=3)

        assert result.action == ""
        assert ab_oracle.calls["propose"] == 0
        assert ab_oracle.calls["evaluate"] == 4
        assert result.root.visits == 4

    def test_degraded_oracle_still_answers(self, root_state):
        def responder(system, messages, temperature, max_tokens):
            if messages[-1].text == EVALUATION_PROMPT or messages[-1].text.startswith("Rate"):
                raise OracleTransportError("judge unavailable")
            return Completion(f"reply at {temperature:.1f}", completion_tokens=3)

        oracle = FakeLLMOracle(responder)
        engine = SearchEngine(oracle, SearchConfig(max_depth=2, max_children=3), rng=random.Random(0))
        result = engine.run(root_state, num_simulations=6, rollout_depth=1)

        assert result.action in {"reply at 0.8", "reply at 0.9", "reply at 1.0"}
        assert result.failed_simulations == 0
        for child in result.tree.children(result.root):
            if child.visits:
                assert child.value == pytest.approx(0.5)
        assert result.completion_tokens == oracle.usage.completion_tokens > 0

    def test_root_children_carry_evaluation_metrics(self, root_state):
        def responder(system, messages, temperature, max_tokens):
            if messages[-1].text == EVALUATION_PROMPT:
                return Completion("0.9, 0.6, 0.3")
            if messages[-1].text.startswith("Rate"):
                return Completion("1. 0.5\n2. 0.5")
            return Completion(f"reply at {temperature:.1f}")

        oracle = FakeLLMOracle(responder)
        engine = SearchEngine(oracle, SearchConfig(max_depth=1, max_children=2), rng=random.Random(0))
        result = engine.run(root_state, num_simulations=4, rollout_depth=1)

        for child in result.tree.children(result.root):
            assert child.state.metrics is not None
            assert result.tree.table.get(child.state.hash()) == child.index
        stats = result.child_stats()
        assert stats[0]["metrics"] == {"coherence": 0.9, "relevance": 0.6, "engagement": 0.3}
        assert result.root.state.metrics is None

    def test_deterministic_with_seed(self, root_state):
        def search(seed):
            oracle = StubOracle(
                actions=["a", "b", "c"],
                scores={"a": 0.2, "b": 0.9, "c": 0.5},
            )
            engine = SearchEngine(oracle, SearchConfig(max_depth=4), rng=random.Random(seed))
            return engine.run(root_state, num_simulations=25, rollout_depth=3)

        first, second = search(42), search(42)
        assert first.action == second.action
        assert first.child_stats() == second.child_stats()
        assert len(first.tree) == len(second.tree)

    def test_visit_conservation(self, root_state):
        oracle = StubOracle(actions=["a", "b"], scores={"a": 0.3, "b": 0.7})
        engine = SearchEngine(oracle, SearchConfig(max_depth=3, max_children=2), rng=random.Random(1))
        result = engine.run(root_state, num_simulations=30, rollout_depth=2)

        assert result.root.visits == 30
        assert len(result.history) == 30
        children = result.tree.children(result.root)
        assert sum(c.visits for c in children) == result.root.visits
        for node in result.tree:
            assert node.visits >= sum(c.visits for c in result.tree.children(node))

    def test_tree_respects_max_depth(self, root_state):
        oracle = StubOracle(actions=["a", "b"])
        engine = SearchEngine(oracle, SearchConfig(max_depth=2, max_children=2), rng=random.Random(0))
        result = engine.run(root_state, num_simulations=30, rollout_depth=3)

        assert max(node.depth for node in result.tree) == 2
        for node in result.tree:
            if node.depth == 2:
                assert node.children == []

    def test_max_children_limits_branching(self, root_state):
        oracle = StubOracle(actions=["a", "b", "c", "d"])
        engine = SearchEngine(oracle, SearchConfig(max_depth=2, max_children=2), rng=random.Random(0))
        result = engine.run(root_state, num_simulations=10, rollout_depth=1)

        assert [c.action for c in result.tree.children(result.root)] == ["a", "b"]

    def test_duplicate_proposals_share_one_child(self, root_state):
        oracle = StubOracle(actions=["same", "same", "other"])
        engine = SearchEngine(oracle, SearchConfig(max_depth=1, max_children=3), rng=random.Random(0))
        result = engine.run(root_state, num_simulations=6, rollout_depth=1)

        assert [c.action for c in result.tree.children(result.root)] == ["same", "other"]
        assert len(result.tree) == len(result.tree.table) == 3


# =============================================================================
# ARGUMENT VALIDATION TESTS
# =============================================================================

class TestValidation:
    def test_mutated_config_rejected_before_oracle_calls(self, root_state, ab_oracle):
        config = SearchConfig()
        config.max_children = 0
        engine = SearchEngine(ab_oracle, config)

        with pytest.raises(ValidationError):
            engine.run(root_state, num_simulations=5, rollout_depth=2)
        assert sum(ab_oracle.calls.values()) == 0

    def test_per_call_config_is_validated(self, root_state, ab_oracle):
        config = SearchConfig()
        config.max_depth = 0
        with pytest.raises(ValidationError):
            SearchEngine(ab_oracle).run(root_state, 5, 2, config=config)

    def test_negative_simulations(self, root_state, ab_oracle):
        with pytest.raises(ValueError):
            SearchEngine(ab_oracle).run(root_state, num_simulations=-1, rollout_depth=2)

    def test_negative_rollout_depth(self, root_state, ab_oracle):
        with pytest.raises(ValueError):
            SearchEngine(ab_oracle).run(root_state, num_simulations=1, rollout_depth=-1)


# =============================================================================
# CONVENIENCE FUNCTION TESTS
# =============================================================================

class TestMCTSFunction:
    def test_basic_usage(self, ab_oracle, shallow_config):
        reply, tokens = mcts(
            ab_oracle,
            "How do I learn to juggle?",
            system="You are a helpful assistant.",
            num_simulations=20,
            simulation_depth=1,
            config=shallow_config,
            seed=0,
        )
        assert reply == "A"
        assert tokens == 0

    def test_reports_completion_tokens(self):
        def responder(system, messages, temperature, max_tokens):
            if messages[-1].text == EVALUATION_PROMPT:
                return Completion("0.5, 0.5, 0.5", completion_tokens=2)
            if messages[-1].text.startswith("Rate"):
                return Completion("1. 0.5\n2. 0.5", completion_tokens=2)
            return Completion(f"option {temperature:.1f}", completion_tokens=7)

        oracle = FakeLLMOracle(responder)
        reply, tokens = mcts(
            oracle,
            "Pick one",
            num_simulations=3,
            simulation_depth=1,
            config=SearchConfig(max_depth=1, max_children=2),
            seed=0,
        )
        assert reply in {"option 0.8", "option 0.9"}
        assert tokens == oracle.usage.completion_tokens
        # One expansion (two proposals plus one rating) and three evaluations
        assert tokens == 2 * 7 + 2 + 3 * 2
