"""
Data models for the statescope explorer.

This module defines the data structures shared by the comparator, the
state graph store, the strategist and the engine: observations, candidate
actions, graph nodes and edges, sessions, statistics and the final
discovery result.

All models use Pydantic for validation and serialization.
"""

from __future__ import annotations

import hashlib
import json
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from statescope.errors import (
    DiscoveryError,
    ErrorCode,
    ErrorContext,
    InvalidStatusTransitionError,
)

# Type alias for state identifiers
StateID = str


def generate_id(prefix: str) -> str:
    """Generate a short unique identifier such as ``state_3f2a9c1d0b7e``."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class ActionKind(str, Enum):
    """Kinds of candidate actions reported by an action-space provider."""

    BUTTON = "button"
    LINK = "link"
    INPUT = "input"
    SELECT = "select"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    TEXTAREA = "textarea"
    CANVAS = "canvas"
    VIDEO = "video"
    SLIDER = "slider"
    TOGGLE = "toggle"
    DROPDOWN = "dropdown"
    MENU_ITEM = "menu-item"
    TAB = "tab"
    ACCORDION = "accordion"
    MODAL_TRIGGER = "modal-trigger"
    CUSTOM = "custom"


FORM_KINDS = frozenset(
    {
        ActionKind.INPUT,
        ActionKind.SELECT,
        ActionKind.TEXTAREA,
        ActionKind.CHECKBOX,
        ActionKind.RADIO,
    }
)


class InteractionType(str, Enum):
    """How an executor should drive an action."""

    CLICK = "click"
    DOUBLE_CLICK = "double-click"
    RIGHT_CLICK = "right-click"
    HOVER = "hover"
    FOCUS = "focus"
    BLUR = "blur"
    TYPE = "type"
    SELECT = "select"
    SCROLL = "scroll"
    DRAG = "drag"
    KEY_PRESS = "key-press"
    WAIT = "wait"
    NAVIGATION = "navigation"


class ExplorationStrategy(str, Enum):
    """Supported exploration strategies."""

    BREADTH_FIRST = "breadth-first"  # FIFO frontier
    DEPTH_FIRST = "depth-first"  # LIFO frontier
    PRIORITY_BASED = "priority-based"  # highest heuristic score first
    RANDOM_WALK = "random-walk"  # uniform random frontier pick
    GUIDED = "guided"  # most unattempted actions first
    HYBRID = "hybrid"  # phase switch on attempted-action count


class ExplorationStatus(str, Enum):
    """Lifecycle of an exploration session."""

    INITIALIZING = "initializing"
    EXPLORING = "exploring"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExplorationStatus.COMPLETED,
            ExplorationStatus.FAILED,
            ExplorationStatus.TIMEOUT,
        )


class DifferenceCategory(str, Enum):
    VISUAL = "visual"
    STRUCTURAL = "structural"
    CONTENT = "content"
    INTERACTION = "interaction"


class DifferenceSeverity(str, Enum):
    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"


class ActionDescriptor(BaseModel):
    """
    A candidate action that can be attempted from a state.

    The core only relies on ``kind``, ``target_ref`` and ``confidence``;
    ``label``, ``visible``, ``enabled`` and ``attributes`` feed the
    priority heuristics of the strategist.

    Attributes:
        target_ref: Opaque handle or selector of the action target
        kind: Kind of action target
        confidence: 0-1 confidence that the target is interactive
        label: Visible text or accessible name
        visible: Whether the target is currently visible
        enabled: Whether the target is currently enabled
        attributes: Additional provider-specific attributes
    """

    model_config = ConfigDict(frozen=True)

    target_ref: str = Field(..., description="Opaque target handle or selector")
    kind: ActionKind = Field(default=ActionKind.CUSTOM, description="Action kind")
    confidence: float = Field(default=1.0, ge=0.0, le=1.0, description="Interactivity confidence")
    label: Optional[str] = Field(default=None, description="Visible text or accessible name")
    visible: bool = Field(default=True, description="Target is visible")
    enabled: bool = Field(default=True, description="Target is enabled")
    attributes: Dict[str, str] = Field(default_factory=dict, description="Extra attributes")

    @property
    def identity(self) -> str:
        """Identity used for structural comparison: ``kind:target_ref``."""
        return f"{self.kind.value}:{self.target_ref}"

    def __hash__(self) -> int:
        return hash(self.identity)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ActionDescriptor):
            return False
        return self.identity == other.identity


class ActionPayload(BaseModel):
    """Optional payload handed to the executor with an action."""

    interaction: InteractionType = Field(default=InteractionType.CLICK)
    text: Optional[str] = Field(default=None, description="Text to type or option to select")


class ViewportContext(BaseModel):
    """Scroll position and size of the live context."""

    model_config = ConfigDict(frozen=True)

    width: int = 0
    height: int = 0
    scroll_x: int = 0
    scroll_y: int = 0
    document_width: int = 0
    document_height: int = 0

    def same_scroll(self, other: ViewportContext) -> bool:
        return self.scroll_x == other.scroll_x and self.scroll_y == other.scroll_y


class Observation(BaseModel):
    """
    A fingerprinted snapshot of the target at one instant.

    Observations are produced by an external capturer and are immutable
    once captured.

    Attributes:
        visual_fingerprint: Opaque visual hash/token ("" when not captured)
        structural_fingerprint: Opaque hash of action space and layout
        viewport: Scroll position and size
        persisted_context: Key/value snapshot of persisted context (storage)
        action_space_size: Number of candidate actions seen while capturing
        location: Location of the live context (URL or equivalent)
        title: Title of the live context
        actions: Candidate actions seen while capturing, when available
        captured_at: Capture timestamp
        metadata: Capturer-specific extras
    """

    model_config = ConfigDict(frozen=True)

    visual_fingerprint: str = Field(default="", description="Visual hash")
    structural_fingerprint: str = Field(default="", description="Structural hash")
    viewport: ViewportContext = Field(default_factory=ViewportContext)
    persisted_context: Dict[str, str] = Field(default_factory=dict)
    action_space_size: int = Field(default=0, ge=0)
    location: Optional[str] = None
    title: Optional[str] = None
    actions: List[ActionDescriptor] = Field(default_factory=list)
    captured_at: datetime = Field(default_factory=datetime.now)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def combined_fingerprint(self) -> str:
        """Exact-equality dedup key of this observation."""
        data = json.dumps([self.visual_fingerprint, self.structural_fingerprint])
        return hashlib.sha256(data.encode("utf-8")).hexdigest()

    @property
    def has_visual_data(self) -> bool:
        return bool(self.visual_fingerprint)

    @property
    def action_count(self) -> int:
        return len(self.actions) or self.action_space_size


class Difference(BaseModel):
    """One categorized difference reported by the comparator."""

    category: DifferenceCategory
    description: str
    severity: DifferenceSeverity


class Comparison(BaseModel):
    """
    Result of comparing two observations.

    Attributes:
        visual_similarity: 0-1 visual similarity
        structural_similarity: Combined structural score (actions, viewport, storage)
        identical: Whether both observations represent the same state
        differences: Categorized differences, reported even for identical=False
        action_similarity: Jaccard similarity of the action identity sets
        viewport_similarity: 1.0, or 0.8 when the scroll position differs
        persisted_similarity: Jaccard similarity of persisted-context keys
        degraded: True when the visual diff capability failed
    """

    visual_similarity: float = Field(..., ge=0.0, le=1.0)
    structural_similarity: float = Field(..., ge=0.0, le=1.0)
    identical: bool
    differences: List[Difference] = Field(default_factory=list)
    action_similarity: float = Field(default=1.0, ge=0.0, le=1.0)
    viewport_similarity: float = Field(default=1.0, ge=0.0, le=1.0)
    persisted_similarity: float = Field(default=1.0, ge=0.0, le=1.0)
    degraded: bool = False

    @property
    def overall_similarity(self) -> float:
        return (self.visual_similarity + self.structural_similarity) / 2


class DiscoveredState(BaseModel):
    """
    A unique state of the target (graph node).

    Created exactly once per combined fingerprint by the store; visit
    metadata and flags are updated through the store afterwards.
    """

    id: StateID = Field(default_factory=lambda: generate_id("state"))
    observation: Observation
    fingerprint: str
    visit_count: int = Field(default=1, ge=0)
    first_visit_time: datetime = Field(default_factory=datetime.now)
    last_visit_time: datetime = Field(default_factory=datetime.now)
    is_terminal: bool = False
    is_error: bool = False
    incoming_edge_ids: List[str] = Field(default_factory=list)
    outgoing_edge_ids: List[str] = Field(default_factory=list)
    actions: List[ActionDescriptor] = Field(default_factory=list)
    depth: int = Field(default=0, ge=0, description="Depth at which the state was first seen")

    @property
    def label(self) -> str:
        obs = self.observation
        return obs.title or obs.location or self.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DiscoveredState):
            return False
        return self.id == other.id


class Transition(BaseModel):
    """
    A directed edge between two discovered states.

    One edge exists per (from, to, action kind, target ref); repeated
    observations of the same edge increment ``count``.
    """

    id: str = Field(default_factory=lambda: generate_id("transition"))
    from_state_id: StateID
    to_state_id: StateID
    action_kind: ActionKind
    target_ref: str
    count: int = Field(default=1, ge=1)
    reversible: bool = False
    first_seen: datetime = Field(default_factory=datetime.now)
    last_seen: datetime = Field(default_factory=datetime.now)

    @property
    def key(self) -> tuple[str, str, str, str]:
        return (self.from_state_id, self.to_state_id, self.action_kind.value, self.target_ref)


class Interaction(BaseModel):
    """One executed action, successful or not."""

    id: str = Field(default_factory=lambda: generate_id("interaction"))
    state_id: StateID
    action: ActionDescriptor
    payload: Optional[ActionPayload] = None
    successful: bool = True
    duration_ms: float = 0.0
    error: Optional[str] = None
    resulting_state_id: Optional[StateID] = None
    timestamp: datetime = Field(default_factory=datetime.now)
    explorer: int = 0


class FrontierEntry(BaseModel):
    """A discovered state waiting to have its actions explored."""

    state_id: StateID
    observation: Observation
    depth: int = Field(default=0, ge=0)
    is_error: bool = False


class ExplorationMetrics(BaseModel):
    """Aggregate counters of a session."""

    states_discovered: int = 0
    transitions_found: int = 0
    interactions_performed: int = 0
    failed_interactions: int = 0
    quiescence_timeouts: int = 0
    degraded_comparisons: int = 0
    exploration_time: float = Field(default=0.0, description="Elapsed seconds")
    average_state_discovery_time: float = Field(default=0.0, description="Seconds per state")


class GraphStatistics(BaseModel):
    """Structural statistics of the state graph, computed on demand."""

    total_states: int = 0
    total_transitions: int = 0
    max_depth: int = 0
    average_branching_factor: float = 0.0
    cycle_count: int = 0
    unreachable_states: int = 0
    terminal_states: int = 0
    error_states: int = 0


_ALLOWED_STATUS_TRANSITIONS: Dict[ExplorationStatus, frozenset] = {
    ExplorationStatus.INITIALIZING: frozenset(
        {
            ExplorationStatus.EXPLORING,
            ExplorationStatus.FAILED,
            ExplorationStatus.TIMEOUT,
            ExplorationStatus.COMPLETED,
        }
    ),
    ExplorationStatus.EXPLORING: frozenset(
        {ExplorationStatus.COMPLETED, ExplorationStatus.FAILED, ExplorationStatus.TIMEOUT}
    ),
}


class ExplorationSession(BaseModel):
    """
    One ``discover()`` run.

    Status only moves forward: initializing -> exploring -> one of the
    terminal statuses, which are absorbing.
    """

    id: str = Field(default_factory=lambda: generate_id("session"))
    status: ExplorationStatus = ExplorationStatus.INITIALIZING
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    metrics: ExplorationMetrics = Field(default_factory=ExplorationMetrics)

    def transition_to(self, status: ExplorationStatus) -> None:
        """Move to ``status``, rejecting moves out of a terminal status."""
        if status == self.status:
            return
        allowed = _ALLOWED_STATUS_TRANSITIONS.get(self.status, frozenset())
        if status not in allowed:
            raise InvalidStatusTransitionError(
                f"Cannot move session {self.id} from {self.status.value} to {status.value}",
                context=ErrorContext(session_id=self.id),
            )
        self.status = status
        if status.is_terminal:
            self.end_time = datetime.now()

    @property
    def elapsed_seconds(self) -> float:
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()


class DiscoveryResult(BaseModel):
    """
    Complete result of a discovery session.

    A result is returned even when the session failed or timed out;
    ``status`` and ``error`` tell partial results apart from a clean
    completion.
    """

    session_id: str
    status: ExplorationStatus
    error: Optional[str] = None
    error_code: Optional[str] = None
    states: List[DiscoveredState] = Field(default_factory=list)
    interactions: List[Interaction] = Field(default_factory=list)
    transitions: List[Transition] = Field(default_factory=list)
    serialized_graph: Dict[str, Any] = Field(default_factory=dict)
    coverage: float = Field(default=0.0, ge=0.0, le=1.0)
    metrics: ExplorationMetrics = Field(default_factory=ExplorationMetrics)
    statistics: GraphStatistics = Field(default_factory=GraphStatistics)
    initial_state_id: Optional[StateID] = None
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @field_validator("coverage")
    @classmethod
    def clamp_coverage(cls, v: float) -> float:
        return min(1.0, max(0.0, v))

    @property
    def succeeded(self) -> bool:
        return self.status == ExplorationStatus.COMPLETED and self.error is None

    def raise_for_status(self) -> None:
        """Raise DiscoveryError when the session did not complete cleanly."""
        if self.succeeded:
            return
        code = ErrorCode.SESSION_TIMEOUT if self.status == ExplorationStatus.TIMEOUT else None
        raise DiscoveryError(
            self.error or f"Discovery session ended with status {self.status.value}",
            error_code=code,
            context=ErrorContext(session_id=self.session_id),
        )

    def get_state(self, state_id: StateID) -> Optional[DiscoveredState]:
        for state in self.states:
            if state.id == state_id:
                return state
        return None

    def get_state_by_location(self, location: str) -> Optional[DiscoveredState]:
        for state in self.states:
            if state.observation.location == location:
                return state
        return None

    def failed_interactions(self) -> List[Interaction]:
        return [i for i in self.interactions if not i.successful]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return self.model_dump(mode="json")
