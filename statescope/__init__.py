"""statescope - automated state-space discovery for interactive targets.

statescope builds a finite-state model of a live, stateful target by
probing it: enumerate candidate actions, try one, observe the resulting
state, decide whether it is new, and continue under an exploration policy
until a budget is exhausted. The result is a directed graph of unique
states and the actions that connect them, plus coverage and structural
statistics.

Key Features:
    - Deduplication: exact fingerprints plus a similarity comparator
    - Strategies: breadth-first, depth-first, priority, random walk,
      guided and hybrid
    - Bounded exploration: state, depth, interaction and wall-clock budgets
    - Parallel explorers sharing one thread-safe state graph
    - Typed events for progress reporting

Example:
    >>> from statescope import DiscoveryConfig, DiscoveryEngine
    >>>
    >>> engine = DiscoveryEngine(
    ...     DiscoveryConfig(strategy="breadth-first", max_depth=3),
    ...     action_provider=provider,
    ...     executor=executor,
    ...     capturer=capturer,
    ...     restorer=restorer,
    ... )
    >>> result = await engine.discover(page)
    >>> print(len(result.states), result.status)
"""

# explorer must load before config (see statescope.explorer).
from statescope.explorer import (
    ActionDescriptor,
    ActionKind,
    ActionOutcome,
    DiscoveredState,
    DiscoveryEngine,
    DiscoveryResult,
    EventBus,
    ExplorationStatus,
    ExplorationStrategy,
    GraphStatistics,
    Observation,
    SimilarityComparator,
    StateGraphStore,
    Strategist,
    Transition,
    ViewportContext,
    run_discovery,
)
from statescope.config import DiscoveryConfig, load_config
from statescope.errors import (
    ConfigurationError,
    DiscoveryError,
    ErrorCode,
    ReferentialIntegrityError,
    StateCapacityError,
    StatescopeError,
)
from statescope.observability import configure_logging, get_logger

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Engine
    "DiscoveryEngine",
    "DiscoveryResult",
    "run_discovery",
    # Components
    "SimilarityComparator",
    "StateGraphStore",
    "Strategist",
    "EventBus",
    # Models
    "ActionDescriptor",
    "ActionKind",
    "ActionOutcome",
    "DiscoveredState",
    "ExplorationStatus",
    "ExplorationStrategy",
    "GraphStatistics",
    "Observation",
    "Transition",
    "ViewportContext",
    # Configuration
    "DiscoveryConfig",
    "load_config",
    # Errors
    "StatescopeError",
    "ErrorCode",
    "ConfigurationError",
    "DiscoveryError",
    "ReferentialIntegrityError",
    "StateCapacityError",
    # Observability
    "configure_logging",
    "get_logger",
]
