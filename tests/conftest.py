"""Pytest configuration and fixtures."""

import pytest

from dialogue_mcts.config import SearchConfig
from dialogue_mcts.state import DialogueState
from dialogue_mcts.utils.logging import set_verbosity

from helpers import StubOracle


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep search logging out of test output."""
    set_verbosity("silent")
    yield
    set_verbosity("normal")


@pytest.fixture
def root_state() -> DialogueState:
    return DialogueState.create("You are a helpful assistant.", "How do I learn to juggle?")


@pytest.fixture
def ab_oracle() -> StubOracle:
    """Proposes A and B with equal priors; A is judged 1.0, B 0.0."""
    return StubOracle(actions=["A", "B"], priors=[0.5, 0.5], scores={"A": 1.0, "B": 0.0})


@pytest.fixture
def shallow_config() -> SearchConfig:
    return SearchConfig(max_depth=1, max_children=2, exploration_constant=1.5, use_rave=True)
