"""
statescope State Explorer Module.

This module discovers the state space of a live, interactive target. It
probes the target through external collaborators, deduplicates observed
states, records the transitions between them and reports coverage and
graph statistics.

The main entry point is the DiscoveryEngine class, which orchestrates the
comparator, the state graph store and the strategist.

Example:
    from statescope.explorer import DiscoveryEngine

    engine = DiscoveryEngine(
        action_provider=provider,
        executor=executor,
        capturer=capturer,
        restorer=restorer,
    )
    result = await engine.discover(page)
    print(result.coverage)
"""

# models must load before engine: engine imports statescope.config, which
# imports the models back.
from statescope.explorer.models import (
    FORM_KINDS,
    ActionDescriptor,
    ActionKind,
    ActionPayload,
    Comparison,
    Difference,
    DifferenceCategory,
    DifferenceSeverity,
    DiscoveredState,
    DiscoveryResult,
    ExplorationMetrics,
    ExplorationSession,
    ExplorationStatus,
    ExplorationStrategy,
    FrontierEntry,
    GraphStatistics,
    Interaction,
    InteractionType,
    Observation,
    StateID,
    Transition,
    ViewportContext,
    generate_id,
)
from statescope.explorer.events import (
    ErrorEvent,
    EventBus,
    EventHandler,
    ExplorationCompleted,
    ExplorationEvent,
    ExplorationProgress,
    InteractionCompleted,
    InteractionFailed,
    StateDiscovered,
    TransitionFound,
)
from statescope.explorer.protocols import (
    ActionExecutor,
    ActionOutcome,
    ActionSpaceProvider,
    ContextFactory,
    ContextRestorer,
    ObservationCapturer,
    QuiescenceWaiter,
    VisualDiff,
)
from statescope.explorer.comparator import SimilarityComparator, jaccard
from statescope.explorer.store import StateGraphStore
from statescope.explorer.strategist import (
    BreadthFirstPolicy,
    DepthFirstPolicy,
    GuidedPolicy,
    HybridPolicy,
    PriorityPolicy,
    RandomWalkPolicy,
    SelectionPolicy,
    Strategist,
    create_policy,
    score_action,
    score_frontier_entry,
)
from statescope.explorer.engine import (
    DiscoveryEngine,
    default_error_detector,
    payload_for,
    run_discovery,
)

__all__ = [
    # Models
    "FORM_KINDS",
    "ActionDescriptor",
    "ActionKind",
    "ActionPayload",
    "Comparison",
    "Difference",
    "DifferenceCategory",
    "DifferenceSeverity",
    "DiscoveredState",
    "DiscoveryResult",
    "ExplorationMetrics",
    "ExplorationSession",
    "ExplorationStatus",
    "ExplorationStrategy",
    "FrontierEntry",
    "GraphStatistics",
    "Interaction",
    "InteractionType",
    "Observation",
    "StateID",
    "Transition",
    "ViewportContext",
    "generate_id",
    # Events
    "ErrorEvent",
    "EventBus",
    "EventHandler",
    "ExplorationCompleted",
    "ExplorationEvent",
    "ExplorationProgress",
    "InteractionCompleted",
    "InteractionFailed",
    "StateDiscovered",
    "TransitionFound",
    # Collaborator interfaces
    "ActionExecutor",
    "ActionOutcome",
    "ActionSpaceProvider",
    "ContextFactory",
    "ContextRestorer",
    "ObservationCapturer",
    "QuiescenceWaiter",
    "VisualDiff",
    # Core classes
    "SimilarityComparator",
    "jaccard",
    "StateGraphStore",
    "SelectionPolicy",
    "BreadthFirstPolicy",
    "DepthFirstPolicy",
    "PriorityPolicy",
    "RandomWalkPolicy",
    "GuidedPolicy",
    "HybridPolicy",
    "Strategist",
    "create_policy",
    "score_action",
    "score_frontier_entry",
    "DiscoveryEngine",
    "default_error_detector",
    "payload_for",
    "run_discovery",
]
