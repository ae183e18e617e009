"""
Dialogue Monte Carlo Tree Search.

Searches the space of assistant replies to a query using a generation
oracle, and returns the reply the search visited most.

Basic usage:

    >>> from dialogue_mcts.search import SearchEngine
    >>> from dialogue_mcts.oracle.gemini import GeminiOracle
    >>> from dialogue_mcts.state import DialogueState
    >>>
    >>> engine = SearchEngine(GeminiOracle())
    >>> state = DialogueState.create("You are a helpful assistant.", "Plan a 3-day trip to Kyoto")
    >>> reply = engine.search(state, num_simulations=10, rollout_depth=3)

Classes:
    SearchNode: Statistics record for one dialogue state
    SearchTree: Node arena plus transposition table
    TranspositionTable: State hash to node index mapping
    SearchEngine: Selection, expansion, rollout and backpropagation
    SearchResult: Chosen reply plus the tree and run statistics

Functions:
    is_terminal: Terminal predicate shared by selection, expansion and rollout
    puct_score: PUCT/RAVE blended selection score
    exploration_term: PUCT exploration bonus
"""

from dialogue_mcts.search.node import SearchNode
from dialogue_mcts.search.tree import SearchTree, TranspositionTable
from dialogue_mcts.search.engine import (
    SearchEngine,
    SearchResult,
    exploration_term,
    is_terminal,
    puct_score,
)

__all__ = [
    "SearchNode",
    "SearchTree",
    "TranspositionTable",
    "SearchEngine",
    "SearchResult",
    "exploration_term",
    "is_terminal",
    "puct_score",
]
