"""Search tree arena and transposition table."""

from __future__ import annotations

import asyncio
from typing import Callable, Dict, Iterator, List, Optional, Set

from dialogue_mcts.search.node import SearchNode
from dialogue_mcts.state import DialogueState


class TranspositionTable:
    """
    Maps state hashes to arena indices.

    Entries are only ever added during a search; the table is dropped with
    the tree when the search returns.
    """

    def __init__(self):
        self._entries: Dict[str, int] = {}

    def get(self, state_hash: str) -> Optional[int]:
        return self._entries.get(state_hash)

    def get_or_create(self, state_hash: str, factory: Callable[[], int]) -> int:
        """
        Return the index stored for ``state_hash``, creating it with ``factory`` if absent.

        The factory must not suspend, so lookup and insert happen as one step
        with respect to other simulations.
        """
        index = self._entries.get(state_hash)
        if index is None:
            index = factory()
            self._entries[state_hash] = index
        return index

    def __contains__(self, state_hash: str) -> bool:
        return state_hash in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class SearchTree:
    """
    Owns every node of one search.

    Nodes are stored in a flat list and addressed by index. Besides the
    arena the tree keeps the transposition table, the prior probability
    recorded for each action text, one expansion lock per node, and the
    advisory set of state hashes currently being explored.
    """

    def __init__(self, root_state: DialogueState):
        self.nodes: List[SearchNode] = []
        self.table = TranspositionTable()
        self.action_priors: Dict[str, float] = {}
        self.in_progress: Set[str] = set()
        self._locks: List[asyncio.Lock] = []

        root_index = self._new_node(root_state)
        self.table.get_or_create(root_state.hash(), lambda: root_index)

    @property
    def root(self) -> SearchNode:
        return self.nodes[0]

    def node(self, index: int) -> SearchNode:
        return self.nodes[index]

    def children(self, node: SearchNode) -> List[SearchNode]:
        return [self.nodes[i] for i in node.children]

    def lock_for(self, node: SearchNode) -> asyncio.Lock:
        """Expansion lock of ``node``."""
        return self._locks[node.index]

    def _new_node(
        self,
        state: DialogueState,
        parent: Optional[int] = None,
        action: Optional[str] = None,
    ) -> int:
        index = len(self.nodes)
        self.nodes.append(SearchNode(index=index, state=state, parent=parent, action=action))
        self._locks.append(asyncio.Lock())
        return index

    def add_child(
        self,
        parent: SearchNode,
        state: DialogueState,
        action: str,
        prior: Optional[float] = None,
    ) -> SearchNode:
        """
        Attach the node for ``state`` under ``parent``.

        An existing node with the same structural hash is reused, so a state
        reached along different paths accumulates its statistics in one place.
        """
        index = self.table.get_or_create(
            state.hash(),
            lambda: self._new_node(state, parent=parent.index, action=action),
        )
        if index not in parent.children:
            parent.children.append(index)
        if prior is not None:
            self.action_priors[action] = prior
        return self.nodes[index]

    def prior(self, child: SearchNode, sibling_count: int) -> float:
        """Stored prior of the child's action, or uniform over its siblings."""
        p = self.action_priors.get(child.action or "")
        if not p:
            return 1.0 / max(1, sibling_count)
        return p

    def __iter__(self) -> Iterator[SearchNode]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)
