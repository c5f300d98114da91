"""
State Graph Store for the statescope explorer.

This module provides the StateGraphStore class, the single owner of the
discovered state graph. It keeps the node and edge maps, the fingerprint
index used for deduplication, and computes graph statistics on demand.

Every read and write goes through one re-entrant lock. ``insert_or_find``
and ``record_transition`` are the only ways to add to the graph, so two
explorers racing to report the same new observation can never both create
a node for it.
"""

from __future__ import annotations

import threading
from collections import deque
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from statescope.errors import ErrorContext, ReferentialIntegrityError, StateCapacityError
from statescope.explorer.models import (
    ActionDescriptor,
    ActionKind,
    DiscoveredState,
    GraphStatistics,
    Observation,
    StateID,
    Transition,
)
from statescope.observability.logging import get_logger

if TYPE_CHECKING:
    from statescope.explorer.comparator import SimilarityComparator

logger = get_logger("statescope.store")

EdgeKey = Tuple[StateID, StateID, str, str]


class StateGraphStore:
    """
    Thread-safe store of discovered states and transitions.

    Nodes are created exactly once per combined fingerprint and are never
    removed during a session; edges are aggregated per
    (from, to, action kind, target ref).

    Example:
        store = StateGraphStore(max_states=100)
        home_id, _ = store.insert_or_find(home_observation)
        page_id, is_new = store.insert_or_find(page_observation, depth=1)
        store.record_transition(home_id, page_id, ActionKind.LINK, "#page")
        print(store.statistics().max_depth)

    Attributes:
        max_states: Upper bound on the number of nodes (None for unbounded)
    """

    def __init__(self, max_states: Optional[int] = None) -> None:
        self.max_states = max_states
        self._lock = threading.RLock()
        self._states: Dict[StateID, DiscoveredState] = {}
        self._fingerprint_index: Dict[str, StateID] = {}
        self._transitions: Dict[str, Transition] = {}
        self._edge_index: Dict[EdgeKey, str] = {}
        self._first_state_id: Optional[StateID] = None
        self._marked_initial: Optional[StateID] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def __contains__(self, state_id: object) -> bool:
        with self._lock:
            return state_id in self._states

    @property
    def state_count(self) -> int:
        return len(self)

    @property
    def transition_count(self) -> int:
        with self._lock:
            return len(self._transitions)

    @property
    def is_full(self) -> bool:
        with self._lock:
            return self.max_states is not None and len(self._states) >= self.max_states

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def insert_or_find(self, observation: Observation, depth: int = 0) -> Tuple[StateID, bool]:
        """
        Find the state for an observation, creating it if unseen.

        Runs as one critical section: fingerprint, index lookup and node
        creation cannot interleave with another explorer's insert.

        Args:
            observation: Observation to deduplicate
            depth: Depth at which the observation was reached

        Returns:
            Tuple of (state_id, is_new)

        Raises:
            StateCapacityError: If the observation is new and the store
                already holds ``max_states`` states
        """
        fingerprint = observation.combined_fingerprint
        with self._lock:
            existing_id = self._fingerprint_index.get(fingerprint)
            if existing_id is not None:
                self._touch(self._states[existing_id])
                return existing_id, False

            if self.max_states is not None and len(self._states) >= self.max_states:
                raise StateCapacityError(
                    f"Cannot add state: capacity of {self.max_states} states reached",
                    context=ErrorContext(extra={"fingerprint": fingerprint[:16]}),
                )

            now = datetime.now()
            state = DiscoveredState(
                observation=observation,
                fingerprint=fingerprint,
                first_visit_time=now,
                last_visit_time=now,
                actions=list(observation.actions),
                depth=depth,
            )
            self._states[state.id] = state
            self._fingerprint_index[fingerprint] = state.id
            if self._first_state_id is None:
                self._first_state_id = state.id

        logger.debug(
            "New state",
            state_id=state.id,
            location=observation.location,
            depth=depth,
        )
        return state.id, True

    def record_transition(
        self,
        from_state_id: StateID,
        to_state_id: StateID,
        action_kind: ActionKind | str,
        target_ref: str,
    ) -> Transition:
        """
        Record that ``action`` led from one state to another.

        Repeats of the same (from, to, kind, target) increment ``count``.

        Raises:
            ReferentialIntegrityError: If either state id is unknown
        """
        kind = ActionKind(action_kind)
        key: EdgeKey = (from_state_id, to_state_id, kind.value, target_ref)

        with self._lock:
            missing = [s for s in (from_state_id, to_state_id) if s not in self._states]
            if missing:
                error = ReferentialIntegrityError(
                    f"Transition references unknown state(s): {', '.join(missing)}",
                    context=ErrorContext(
                        state_id=from_state_id,
                        action=f"{kind.value}:{target_ref}",
                        extra={"to_state_id": to_state_id, "missing": missing},
                    ),
                )
                logger.error(
                    "Internal consistency error: transition against unknown state",
                    from_state_id=from_state_id,
                    to_state_id=to_state_id,
                    missing=missing,
                )
                raise error

            existing_id = self._edge_index.get(key)
            if existing_id is not None:
                transition = self._transitions[existing_id]
                transition.count += 1
                transition.last_seen = datetime.now()
                return transition

            transition = Transition(
                from_state_id=from_state_id,
                to_state_id=to_state_id,
                action_kind=kind,
                target_ref=target_ref,
            )
            self._transitions[transition.id] = transition
            self._edge_index[key] = transition.id

            source = self._states[from_state_id]
            target = self._states[to_state_id]
            source.outgoing_edge_ids.append(transition.id)
            target.incoming_edge_ids.append(transition.id)
            source.is_terminal = False

            reverse = [
                t for t in self._transitions.values()
                if t.from_state_id == to_state_id and t.to_state_id == from_state_id
            ]
            if reverse and from_state_id != to_state_id:
                transition.reversible = True
                for t in reverse:
                    t.reversible = True

        logger.debug(
            "New transition",
            transition_id=transition.id,
            from_state_id=from_state_id,
            to_state_id=to_state_id,
            action=f"{kind.value}:{target_ref}",
        )
        return transition

    def record_visit(self, state_id: StateID) -> DiscoveredState:
        with self._lock:
            state = self._require(state_id)
            self._touch(state)
            return state

    def record_action_space(
        self, state_id: StateID, actions: Sequence[ActionDescriptor]
    ) -> List[ActionDescriptor]:
        """
        Merge an enumerated action space into the state's recorded actions.

        Returns:
            The merged action list, in first-seen order
        """
        with self._lock:
            state = self._require(state_id)
            known = {a.identity for a in state.actions}
            for action in actions:
                if action.identity not in known:
                    state.actions.append(action)
                    known.add(action.identity)
            return list(state.actions)

    def mark_terminal(self, state_id: StateID, terminal: bool = True) -> None:
        with self._lock:
            self._require(state_id).is_terminal = terminal

    def mark_error(self, state_id: StateID, error: bool = True) -> None:
        with self._lock:
            self._require(state_id).is_error = error

    def mark_initial(self, state_id: StateID) -> None:
        """Pin the initial state used by statistics and path queries."""
        with self._lock:
            self._require(state_id)
            self._marked_initial = state_id

    def clear(self) -> None:
        """Remove every state and transition."""
        with self._lock:
            self._states.clear()
            self._fingerprint_index.clear()
            self._transitions.clear()
            self._edge_index.clear()
            self._first_state_id = None
            self._marked_initial = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def initial_state_id(self) -> Optional[StateID]:
        """
        The initial state.

        An explicitly marked state wins. Otherwise the unique state with no
        incoming edges; when none or several qualify, the first inserted.
        """
        with self._lock:
            if self._marked_initial is not None:
                return self._marked_initial
            roots = [s.id for s in self._states.values() if not s.incoming_edge_ids]
            if len(roots) == 1:
                return roots[0]
            return self._first_state_id

    def get_state(self, state_id: StateID) -> Optional[DiscoveredState]:
        with self._lock:
            return self._states.get(state_id)

    def get_transition(self, transition_id: str) -> Optional[Transition]:
        with self._lock:
            return self._transitions.get(transition_id)

    def find_by_fingerprint(self, fingerprint: str) -> Optional[StateID]:
        with self._lock:
            return self._fingerprint_index.get(fingerprint)

    def find_edge(
        self,
        from_state_id: StateID,
        to_state_id: StateID,
        action_kind: ActionKind | str,
        target_ref: str,
    ) -> Optional[Transition]:
        key: EdgeKey = (from_state_id, to_state_id, ActionKind(action_kind).value, target_ref)
        with self._lock:
            edge_id = self._edge_index.get(key)
            return self._transitions.get(edge_id) if edge_id else None

    def transitions_from(self, state_id: StateID) -> List[Transition]:
        with self._lock:
            state = self._states.get(state_id)
            if state is None:
                return []
            return [self._transitions[t] for t in state.outgoing_edge_ids]

    def transitions_to(self, state_id: StateID) -> List[Transition]:
        with self._lock:
            state = self._states.get(state_id)
            if state is None:
                return []
            return [self._transitions[t] for t in state.incoming_edge_ids]

    def states(self) -> List[DiscoveredState]:
        """All states in insertion order."""
        with self._lock:
            return list(self._states.values())

    def transitions(self) -> List[Transition]:
        with self._lock:
            return list(self._transitions.values())

    def state_ids(self) -> List[StateID]:
        with self._lock:
            return list(self._states)

    def find_similar_state(
        self,
        observation: Observation,
        comparator: "SimilarityComparator",
    ) -> Optional[StateID]:
        """
        Find an existing state the comparator considers identical.

        Tries the exact fingerprint index first, then scans every state.
        The scan is O(states) comparisons and holds the lock throughout.
        """
        with self._lock:
            exact = self._fingerprint_index.get(observation.combined_fingerprint)
            if exact is not None:
                return exact
            for state in self._states.values():
                if comparator.compare(state.observation, observation).identical:
                    return state.id
        return None

    def shortest_path(self, from_state_id: StateID, to_state_id: StateID) -> Optional[List[StateID]]:
        """
        Shortest path between two states as a list of state ids (BFS).

        Returns ``[from_state_id]`` when both ids are equal and None when
        either id is unknown or no path exists.
        """
        edges = self.shortest_path_transitions(from_state_id, to_state_id)
        if edges is None:
            return None
        return [from_state_id] + [t.to_state_id for t in edges]

    def shortest_path_transitions(
        self, from_state_id: StateID, to_state_id: StateID
    ) -> Optional[List[Transition]]:
        """Shortest path as the list of transitions to follow."""
        with self._lock:
            if from_state_id not in self._states or to_state_id not in self._states:
                return None
            if from_state_id == to_state_id:
                return []

            previous: Dict[StateID, Transition] = {}
            visited: Set[StateID] = {from_state_id}
            queue: deque[StateID] = deque([from_state_id])

            while queue:
                current = queue.popleft()
                for edge_id in self._states[current].outgoing_edge_ids:
                    edge = self._transitions[edge_id]
                    neighbor = edge.to_state_id
                    if neighbor in visited:
                        continue
                    visited.add(neighbor)
                    previous[neighbor] = edge
                    if neighbor == to_state_id:
                        path: List[Transition] = []
                        node = to_state_id
                        while node != from_state_id:
                            step = previous[node]
                            path.append(step)
                            node = step.from_state_id
                        path.reverse()
                        return path
                    queue.append(neighbor)

        return None

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def statistics(self) -> GraphStatistics:
        """Compute graph statistics from the current graph."""
        with self._lock:
            initial = self.initial_state_id
            with_outgoing = [s for s in self._states.values() if s.outgoing_edge_ids]
            branching = (
                sum(len(s.outgoing_edge_ids) for s in with_outgoing) / len(with_outgoing)
                if with_outgoing
                else 0.0
            )

            return GraphStatistics(
                total_states=len(self._states),
                total_transitions=len(self._transitions),
                max_depth=self._max_depth(initial),
                average_branching_factor=branching,
                cycle_count=self._count_back_edges(initial),
                unreachable_states=sum(
                    1
                    for s in self._states.values()
                    if not s.incoming_edge_ids and s.id != initial
                ),
                terminal_states=sum(1 for s in self._states.values() if s.is_terminal),
                error_states=sum(1 for s in self._states.values() if s.is_error),
            )

    def depths(self) -> Dict[StateID, int]:
        """BFS distance from the initial state for every reachable state."""
        with self._lock:
            return self._bfs_depths(self.initial_state_id)

    def _bfs_depths(self, start: Optional[StateID]) -> Dict[StateID, int]:
        if start is None or start not in self._states:
            return {}
        depths: Dict[StateID, int] = {start: 0}
        queue: deque[StateID] = deque([start])
        while queue:
            current = queue.popleft()
            for neighbor in self._neighbors(current):
                if neighbor not in depths:
                    depths[neighbor] = depths[current] + 1
                    queue.append(neighbor)
        return depths

    def _max_depth(self, start: Optional[StateID]) -> int:
        depths = self._bfs_depths(start)
        return max(depths.values()) if depths else 0

    def _count_back_edges(self, start: Optional[StateID]) -> int:
        """
        Count back edges with an iterative DFS.

        Every edge to a node currently on the DFS stack is one cycle. The
        walk starts from the initial state, then covers any node it did not
        reach.
        """
        order: List[StateID] = list(self._states)
        if start is not None and start in self._states:
            order.remove(start)
            order.insert(0, start)

        visited: Set[StateID] = set()
        on_stack: Set[StateID] = set()
        back_edges = 0

        for root in order:
            if root in visited:
                continue
            visited.add(root)
            on_stack.add(root)
            stack: List[Tuple[StateID, Iterator[StateID]]] = [
                (root, iter(self._edge_targets(root)))
            ]
            while stack:
                node, targets = stack[-1]
                advanced = False
                for target in targets:
                    if target in on_stack:
                        back_edges += 1
                    elif target not in visited:
                        visited.add(target)
                        on_stack.add(target)
                        stack.append((target, iter(self._edge_targets(target))))
                        advanced = True
                        break
                if not advanced:
                    stack.pop()
                    on_stack.discard(node)

        return back_edges

    def _edge_targets(self, state_id: StateID) -> List[StateID]:
        """Target of every outgoing edge, one entry per edge."""
        return [self._transitions[e].to_state_id for e in self._states[state_id].outgoing_edge_ids]

    def _neighbors(self, state_id: StateID) -> List[StateID]:
        seen: Dict[StateID, None] = {}
        for target in self._edge_targets(state_id):
            seen.setdefault(target, None)
        return list(seen)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize(self) -> Dict[str, Any]:
        """
        Serialize the graph as ``{"nodes": [...], "edges": [...]}``.

        Node and edge payloads are JSON compatible.
        """
        with self._lock:
            nodes = [
                {
                    "id": state.id,
                    "label": state.label,
                    "data": {
                        "fingerprint": state.fingerprint,
                        "location": state.observation.location,
                        "title": state.observation.title,
                        "visit_count": state.visit_count,
                        "depth": state.depth,
                        "is_terminal": state.is_terminal,
                        "is_error": state.is_error,
                        "action_count": len(state.actions),
                        "is_initial": state.id == self.initial_state_id,
                    },
                }
                for state in self._states.values()
            ]
            edges = [
                {
                    "id": t.id,
                    "from": t.from_state_id,
                    "to": t.to_state_id,
                    "label": f"{t.action_kind.value}:{t.target_ref}",
                    "data": {
                        "action_kind": t.action_kind.value,
                        "target_ref": t.target_ref,
                        "count": t.count,
                        "reversible": t.reversible,
                    },
                }
                for t in self._transitions.values()
            ]
        return {"nodes": nodes, "edges": edges}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, state_id: StateID) -> DiscoveredState:
        state = self._states.get(state_id)
        if state is None:
            raise ReferentialIntegrityError(
                f"Unknown state: {state_id}",
                context=ErrorContext(state_id=state_id),
            )
        return state

    @staticmethod
    def _touch(state: DiscoveredState) -> None:
        state.visit_count += 1
        state.last_visit_time = datetime.now()
