"""
Exploration Policy for the statescope explorer.

This module provides the Strategist, which decides which frontier entry to
explore next and which action to try from a state. Each exploration
strategy is a SelectionPolicy subclass; the hybrid policy wraps the others
and switches between them as the number of attempted actions grows.

The Strategist also owns the attempted ``(state_id, target_ref)`` set, so
no action is ever tried twice from the same state within a session.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from statescope.explorer.models import (
    FORM_KINDS,
    ActionDescriptor,
    ActionKind,
    ExplorationStrategy,
    FrontierEntry,
    StateID,
)
from statescope.observability.logging import get_logger

logger = get_logger("statescope.strategist")

# Frontier scoring
ACTION_COUNT_WEIGHT = 10
DEPTH_WEIGHT = 5
FORM_BONUS = 20
NAVIGATION_BONUS = 15
ERROR_PENALTY = 30

# Action scoring
KIND_WEIGHTS: Dict[ActionKind, int] = {
    ActionKind.BUTTON: 50,
    ActionKind.LINK: 40,
    ActionKind.INPUT: 35,
    ActionKind.SELECT: 30,
    ActionKind.CHECKBOX: 25,
    ActionKind.RADIO: 20,
    ActionKind.TEXTAREA: 15,
    ActionKind.CUSTOM: 10,
}
VISIBLE_BONUS = 20
ENABLED_BONUS = 10
LABEL_BONUS = 15
MAX_MEANINGFUL_LABEL = 50
IMPORTANT_KEYWORD_BONUS = 25
RISKY_KEYWORD_PENALTY = 20

IMPORTANT_KEYWORDS = ("submit", "next", "continue", "login", "search", "add", "create")
RISKY_KEYWORDS = ("logout", "exit", "cancel", "close")

# Hybrid phase boundaries, in attempted actions
HYBRID_BREADTH_LIMIT = 10
HYBRID_PRIORITY_LIMIT = 50


def action_label(action: ActionDescriptor) -> str:
    """Visible text of an action, falling back to text-like attributes."""
    return (
        action.label
        or action.attributes.get("text")
        or action.attributes.get("aria-label")
        or action.attributes.get("ariaLabel")
        or ""
    )


def looks_like_error(entry: FrontierEntry) -> bool:
    if entry.is_error:
        return True
    location = (entry.observation.location or "").lower()
    title = (entry.observation.title or "").lower()
    return "error" in location or "error" in title


def score_frontier_entry(entry: FrontierEntry, max_depth: int) -> int:
    """
    Priority of a frontier entry.

    More actions, shallower depth, forms and navigation raise the score;
    error-looking states lower it.
    """
    actions = entry.observation.actions
    score = entry.observation.action_count * ACTION_COUNT_WEIGHT
    score += (max_depth - entry.depth) * DEPTH_WEIGHT

    if any(a.kind in FORM_KINDS for a in actions):
        score += FORM_BONUS
    if any(a.kind == ActionKind.LINK or a.attributes.get("role") == "navigation" for a in actions):
        score += NAVIGATION_BONUS
    if looks_like_error(entry):
        score -= ERROR_PENALTY

    return score


def score_action(action: ActionDescriptor) -> float:
    """Priority of a candidate action."""
    score = action.confidence * 100
    score += KIND_WEIGHTS.get(action.kind, 0)

    if action.visible:
        score += VISIBLE_BONUS
    if action.enabled:
        score += ENABLED_BONUS

    label = action_label(action)
    if 0 < len(label) < MAX_MEANINGFUL_LABEL:
        score += LABEL_BONUS

    text = label.lower()
    if any(keyword in text for keyword in IMPORTANT_KEYWORDS):
        score += IMPORTANT_KEYWORD_BONUS
    if any(keyword in text for keyword in RISKY_KEYWORDS):
        score -= RISKY_KEYWORD_PENALTY

    return score


def _argmax(items: Sequence[Any], key: Any) -> int:
    """Index of the highest-scoring item; the first one wins ties."""
    best_index = 0
    best_score = None
    for index, item in enumerate(items):
        score = key(item)
        if best_score is None or score > best_score:
            best_index, best_score = index, score
    return best_index


class SelectionPolicy(ABC):
    """
    One exploration strategy.

    Policies pick positions and actions but never mutate the frontier or
    the attempted set themselves; the Strategist does that.
    """

    strategy: ExplorationStrategy

    @abstractmethod
    def frontier_index(self, frontier: Sequence[FrontierEntry], strategist: Strategist) -> int:
        """Index of the frontier entry to explore next."""

    def choose_action(
        self,
        entry_state_id: StateID,
        candidates: Sequence[ActionDescriptor],
        strategist: Strategist,
    ) -> ActionDescriptor:
        """Pick one of the non-empty, not yet attempted candidates."""
        return candidates[0]


class BreadthFirstPolicy(SelectionPolicy):
    strategy = ExplorationStrategy.BREADTH_FIRST

    def frontier_index(self, frontier: Sequence[FrontierEntry], strategist: Strategist) -> int:
        return 0


class DepthFirstPolicy(SelectionPolicy):
    strategy = ExplorationStrategy.DEPTH_FIRST

    def frontier_index(self, frontier: Sequence[FrontierEntry], strategist: Strategist) -> int:
        return len(frontier) - 1


class PriorityPolicy(SelectionPolicy):
    strategy = ExplorationStrategy.PRIORITY_BASED

    def frontier_index(self, frontier: Sequence[FrontierEntry], strategist: Strategist) -> int:
        return _argmax(frontier, lambda e: score_frontier_entry(e, strategist.max_depth))

    def choose_action(
        self,
        entry_state_id: StateID,
        candidates: Sequence[ActionDescriptor],
        strategist: Strategist,
    ) -> ActionDescriptor:
        return candidates[_argmax(candidates, score_action)]


class RandomWalkPolicy(SelectionPolicy):
    strategy = ExplorationStrategy.RANDOM_WALK

    def frontier_index(self, frontier: Sequence[FrontierEntry], strategist: Strategist) -> int:
        return strategist.rng.randrange(len(frontier))

    def choose_action(
        self,
        entry_state_id: StateID,
        candidates: Sequence[ActionDescriptor],
        strategist: Strategist,
    ) -> ActionDescriptor:
        return strategist.rng.choice(list(candidates))


class GuidedPolicy(SelectionPolicy):
    """Most unexplored state first; form inputs, then navigation, then priority."""

    strategy = ExplorationStrategy.GUIDED

    def frontier_index(self, frontier: Sequence[FrontierEntry], strategist: Strategist) -> int:
        return _argmax(frontier, strategist.unexplored_in_entry)

    def choose_action(
        self,
        entry_state_id: StateID,
        candidates: Sequence[ActionDescriptor],
        strategist: Strategist,
    ) -> ActionDescriptor:
        forms = [a for a in candidates if a.kind in FORM_KINDS]
        if forms:
            return forms[_argmax(forms, score_action)]

        links = [a for a in candidates if a.kind == ActionKind.LINK]
        if links:
            return links[_argmax(links, score_action)]

        return candidates[_argmax(candidates, score_action)]


class HybridPolicy(SelectionPolicy):
    """
    Switches policy by the number of attempted actions.

    Breadth-first while fewer than 10 actions were attempted, priority-based
    below 50, random walk afterwards.
    """

    strategy = ExplorationStrategy.HYBRID

    def __init__(self) -> None:
        self.breadth_first = BreadthFirstPolicy()
        self.priority = PriorityPolicy()
        self.random_walk = RandomWalkPolicy()

    def phase(self, strategist: Strategist) -> SelectionPolicy:
        attempted = strategist.attempt_count
        if attempted < HYBRID_BREADTH_LIMIT:
            return self.breadth_first
        if attempted < HYBRID_PRIORITY_LIMIT:
            return self.priority
        return self.random_walk

    def frontier_index(self, frontier: Sequence[FrontierEntry], strategist: Strategist) -> int:
        return self.phase(strategist).frontier_index(frontier, strategist)

    def choose_action(
        self,
        entry_state_id: StateID,
        candidates: Sequence[ActionDescriptor],
        strategist: Strategist,
    ) -> ActionDescriptor:
        return self.phase(strategist).choose_action(entry_state_id, candidates, strategist)


POLICIES: Dict[ExplorationStrategy, type[SelectionPolicy]] = {
    ExplorationStrategy.BREADTH_FIRST: BreadthFirstPolicy,
    ExplorationStrategy.DEPTH_FIRST: DepthFirstPolicy,
    ExplorationStrategy.PRIORITY_BASED: PriorityPolicy,
    ExplorationStrategy.RANDOM_WALK: RandomWalkPolicy,
    ExplorationStrategy.GUIDED: GuidedPolicy,
    ExplorationStrategy.HYBRID: HybridPolicy,
}


def create_policy(strategy: ExplorationStrategy | str) -> SelectionPolicy:
    return POLICIES[ExplorationStrategy(strategy)]()


class Strategist:
    """
    Chooses what to explore next.

    Example:
        strategist = Strategist(ExplorationStrategy.PRIORITY_BASED, max_depth=5)
        entry = strategist.select_next_frontier(frontier)
        action = strategist.select_next_action(entry.state_id, actions)
        while action is not None:
            ...
            action = strategist.select_next_action(entry.state_id, actions)

    Attributes:
        max_depth: Depth bound used by the frontier priority score
        rng: Random source for the random-walk phases (seedable)
    """

    def __init__(
        self,
        strategy: ExplorationStrategy | str = ExplorationStrategy.BREADTH_FIRST,
        max_depth: int = 10,
        seed: Optional[int] = None,
    ) -> None:
        self.max_depth = max_depth
        self.rng = random.Random(seed)
        self._policy = create_policy(strategy)
        self._attempted: Set[Tuple[StateID, str]] = set()

    @property
    def strategy(self) -> ExplorationStrategy:
        return self._policy.strategy

    @property
    def policy(self) -> SelectionPolicy:
        return self._policy

    @property
    def attempt_count(self) -> int:
        return len(self._attempted)

    def set_strategy(self, strategy: ExplorationStrategy | str) -> None:
        """Switch strategy; the attempted set is kept."""
        self._policy = create_policy(strategy)
        logger.info("Exploration strategy updated", strategy=self.strategy.value)

    def select_next_frontier(self, frontier: List[FrontierEntry]) -> FrontierEntry:
        """
        Remove and return the next frontier entry to explore.

        Raises:
            ValueError: If the frontier is empty
        """
        if not frontier:
            raise ValueError("Frontier is empty")
        index = self._policy.frontier_index(frontier, self)
        return frontier.pop(index)

    def select_next_action(
        self,
        state_id: StateID,
        actions: Sequence[ActionDescriptor],
    ) -> Optional[ActionDescriptor]:
        """
        Pick the next action to try from a state and mark it attempted.

        Returns:
            The chosen action, or None when every action was attempted
        """
        candidates = self.unexplored(state_id, actions)
        if not candidates:
            return None
        action = self._policy.choose_action(state_id, candidates, self)
        self.mark_attempted(state_id, action)
        return action

    def mark_attempted(self, state_id: StateID, action: ActionDescriptor) -> None:
        self._attempted.add((state_id, action.target_ref))

    def is_attempted(self, state_id: StateID, action: ActionDescriptor) -> bool:
        return (state_id, action.target_ref) in self._attempted

    def unexplored(
        self, state_id: StateID, actions: Sequence[ActionDescriptor]
    ) -> List[ActionDescriptor]:
        """Actions not yet attempted from ``state_id``, duplicates removed."""
        seen: Set[str] = set()
        result: List[ActionDescriptor] = []
        for action in actions:
            if action.target_ref in seen or self.is_attempted(state_id, action):
                continue
            seen.add(action.target_ref)
            result.append(action)
        return result

    def unexplored_count(self, state_id: StateID, actions: Sequence[ActionDescriptor]) -> int:
        return len(self.unexplored(state_id, actions))

    def unexplored_in_entry(self, entry: FrontierEntry) -> int:
        """Unattempted actions of a frontier entry, from what its observation carries."""
        observation = entry.observation
        if observation.actions:
            return self.unexplored_count(entry.state_id, observation.actions)
        return max(0, observation.action_space_size - len(self.attempted_for(entry.state_id)))

    def attempted_for(self, state_id: StateID) -> Set[str]:
        """Target refs already attempted from ``state_id``."""
        return {ref for sid, ref in self._attempted if sid == state_id}

    def stats(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "attempted_actions": self.attempt_count,
            "states_with_attempts": len({sid for sid, _ in self._attempted}),
        }

    def reset(self) -> None:
        """Forget every attempted action."""
        self._attempted.clear()
