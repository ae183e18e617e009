"""
Search node for dialogue Monte Carlo Tree Search.

This module defines the SearchNode class - the statistics record kept for
every dialogue state the search has reached.

=============================================================================
WHAT IS A NODE HERE?
=============================================================================

In game MCTS a node is a board position. Here a node is a conversation
prefix (a DialogueState): the root holds the user's query, and each child
appends one candidate assistant reply proposed by the generation oracle.
The edge label (``action``) is that reply's text, which is what the search
ultimately returns.

=============================================================================
WHY INDICES INSTEAD OF REFERENCES?
=============================================================================

Nodes live in an arena owned by SearchTree (see tree.py). A node refers to
its parent and children by arena index, never by object reference, so the
tree has a single owner and no reference cycles. The transposition table
may hand the same node to several parents; the ``parent`` field records
only the first one.

=============================================================================
NODE STATISTICS
=============================================================================

Each node tracks:
- visits / total_value: direct statistics (average = total_value / visits)
- rave_visits / rave_value: RAVE statistics, blended in during selection
- is_fully_expanded: set once the oracle has been asked for children

Statistics only ever grow, and only during backpropagation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from dialogue_mcts.state import DialogueState


@dataclass
class SearchNode:
    """
    A node in the dialogue search tree.

    Attributes:
        index: Position in the owning tree's arena (unique per search)
        state: The dialogue state this node stands for
        parent: Arena index of the parent (None for root)
        action: Reply text on the edge from the parent (None for root)
        children: Arena indices of child nodes, in creation order
        visits: Number of simulations whose path passed through this node
        total_value: Sum of rollout values backpropagated through this node
        rave_visits: RAVE visit count
        rave_value: Sum of RAVE values
        is_fully_expanded: Whether expansion has already run for this node

    Example:
        >>> node = SearchNode(index=0, state=DialogueState.create("", "Hi there"))
        >>> node.update(0.8)
        >>> node.value
        0.8
    """

    index: int
    state: DialogueState
    parent: Optional[int] = None
    action: Optional[str] = None
    children: List[int] = field(default_factory=list)

    visits: int = 0
    total_value: float = 0.0
    rave_visits: int = 0
    rave_value: float = 0.0

    is_fully_expanded: bool = False

    @property
    def value(self) -> float:
        """Average backpropagated value, or 0 if never visited."""
        if self.visits == 0:
            return 0.0
        return self.total_value / self.visits

    @property
    def rave_average(self) -> float:
        """Average RAVE value, or 0 if there is no RAVE data."""
        if self.rave_visits == 0:
            return 0.0
        return self.rave_value / self.rave_visits

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def is_leaf(self) -> bool:
        return len(self.children) == 0

    @property
    def depth(self) -> int:
        return self.state.depth

    def update(self, value: float) -> None:
        """Record one backpropagated simulation value."""
        self.visits += 1
        self.total_value += value

    def update_rave(self, value: float) -> None:
        """Record one RAVE observation."""
        self.rave_visits += 1
        self.rave_value += value

    def __repr__(self) -> str:
        return (
            f"SearchNode(index={self.index}, depth={self.depth}, visits={self.visits}, "
            f"value={self.value:.3f}, children={len(self.children)})"
        )
