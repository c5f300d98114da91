"""
Discovery Engine for the statescope explorer.

This module provides the DiscoveryEngine class which drives a discovery
session: it captures the initial observation, then repeatedly picks a
frontier state, restores the live context to it, enumerates its actions
and tries them one at a time, recording every new state and transition
in the shared StateGraphStore.

Each explorer loop owns its frontier and strategist; only the store is
shared. Every call into an external collaborator is bounded by its own
timeout, and a failing action never ends the session.
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from statescope.config import DiscoveryConfig
from statescope.errors import (
    ActionExecutionError,
    ActionTimeoutError,
    ContextRestoreError,
    DiscoveryError,
    ErrorCode,
    ErrorContext,
    ObservationError,
    QuiescenceTimeoutError,
    StateCapacityError,
    StatescopeError,
)
from statescope.explorer.comparator import SimilarityComparator
from statescope.explorer.events import (
    ErrorEvent,
    EventBus,
    EventHandler,
    ExplorationCompleted,
    ExplorationProgress,
    InteractionCompleted,
    InteractionFailed,
    StateDiscovered,
    TransitionFound,
)
from statescope.explorer.models import (
    ActionDescriptor,
    ActionKind,
    ActionPayload,
    Comparison,
    DiscoveryResult,
    ExplorationSession,
    ExplorationStatus,
    FrontierEntry,
    Interaction,
    InteractionType,
    Observation,
    StateID,
)
from statescope.explorer.protocols import (
    ActionExecutor,
    ActionSpaceProvider,
    ContextFactory,
    ContextRestorer,
    ObservationCapturer,
    QuiescenceWaiter,
    VisualDiff,
)
from statescope.explorer.store import StateGraphStore
from statescope.explorer.strategist import Strategist
from statescope.observability.logging import BoundLogger, get_logger, log_context

logger = get_logger("statescope.engine")

ErrorDetector = Callable[[Observation], bool]

TEXT_KINDS = frozenset({ActionKind.INPUT, ActionKind.TEXTAREA})
CHOICE_KINDS = frozenset({ActionKind.SELECT, ActionKind.DROPDOWN})


def default_error_detector(observation: Observation) -> bool:
    """Flag observations whose location or title mentions an error."""
    location = (observation.location or "").lower()
    title = (observation.title or "").lower()
    return "error" in location or "error" in title


def payload_for(action: ActionDescriptor, input_text: str) -> ActionPayload:
    """Build the payload an executor needs for ``action``."""
    if action.kind in TEXT_KINDS:
        return ActionPayload(interaction=InteractionType.TYPE, text=input_text)
    if action.kind in CHOICE_KINDS:
        return ActionPayload(interaction=InteractionType.SELECT, text=action.attributes.get("value"))
    return ActionPayload(interaction=InteractionType.CLICK)


class DiscoveryEngine:
    """
    Orchestrates state-space discovery against a live target.

    Example:
        engine = DiscoveryEngine(
            DiscoveryConfig(strategy="breadth-first", max_states=50),
            action_provider=provider,
            executor=executor,
            capturer=capturer,
            restorer=restorer,
        )
        engine.subscribe(lambda event: print(event.name))
        result = await engine.discover(page)
        print(len(result.states), result.coverage)

    Attributes:
        config: Discovery configuration
        comparator: Similarity comparator deciding new vs. known states
        error_detector: Callable flagging error observations
    """

    def __init__(
        self,
        config: Optional[DiscoveryConfig] = None,
        *,
        action_provider: ActionSpaceProvider,
        executor: ActionExecutor,
        capturer: ObservationCapturer,
        restorer: ContextRestorer,
        quiescence: Optional[QuiescenceWaiter] = None,
        visual_diff: Optional[VisualDiff] = None,
        context_factory: Optional[ContextFactory] = None,
        store: Optional[StateGraphStore] = None,
        event_bus: Optional[EventBus] = None,
        error_detector: Optional[ErrorDetector] = None,
        comparator: Optional[SimilarityComparator] = None,
    ) -> None:
        self.config = config or DiscoveryConfig()
        self.action_provider = action_provider
        self.executor = executor
        self.capturer = capturer
        self.restorer = restorer
        self.quiescence = quiescence
        self.context_factory = context_factory
        self.error_detector = error_detector or default_error_detector
        self.comparator = comparator or SimilarityComparator(
            enable_visual_diff=self.config.enable_visual_diff,
            visual_diff=visual_diff,
            visual_threshold=self.config.visual_threshold,
            structural_threshold=self.config.structural_threshold,
        )

        self._store = store or StateGraphStore(max_states=self.config.max_states)
        if self._store.max_states is None:
            self._store.max_states = self.config.max_states
        self._events = event_bus or EventBus()
        self._stop = threading.Event()
        self._session: Optional[ExplorationSession] = None
        self._interactions: List[Interaction] = []
        self._available: Dict[StateID, Set[str]] = {}
        self._explored: Dict[StateID, Set[str]] = {}
        self._initial_state_id: Optional[StateID] = None

    @property
    def store(self) -> StateGraphStore:
        return self._store

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def session(self) -> Optional[ExplorationSession]:
        return self._session

    @property
    def interactions(self) -> List[Interaction]:
        return list(self._interactions)

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def subscribe(self, handler: EventHandler, names: Optional[List[str]] = None) -> EventHandler:
        return self._events.subscribe(handler, names)

    def stop(self) -> None:
        """
        Ask every explorer to stop at the next safe point.

        In-flight actions finish (bounded by their timeout); the session
        then ends with status ``completed``.
        """
        self._stop.set()
        logger.info("Stop requested", session_id=self._session.id if self._session else None)

    async def discover(self, live_context: Any = None) -> DiscoveryResult:
        """
        Run one discovery session.

        Args:
            live_context: Handle of the live target passed to every collaborator

        Returns:
            DiscoveryResult, also when the session failed or timed out
        """
        config = self.config
        session = ExplorationSession(config=config.model_dump(mode="json"))
        self._session = session
        self._stop.clear()
        self._interactions = []
        self._available = {}
        self._explored = {}
        self._initial_state_id = None

        log = logger.bind(session_id=session.id)
        log.info(
            "Discovery started",
            strategy=config.strategy.value,
            max_states=config.max_states,
            max_depth=config.max_depth,
            parallel_explorers=config.parallel_explorers,
        )

        error: Optional[StatescopeError] = None
        with log_context(session_id=session.id):
            try:
                if config.session_timeout is not None:
                    await asyncio.wait_for(
                        self._run(live_context, session), timeout=config.session_timeout
                    )
                else:
                    await self._run(live_context, session)
            except asyncio.TimeoutError:
                session.transition_to(ExplorationStatus.TIMEOUT)
                log.warning("Session timeout reached", timeout=config.session_timeout)
                self._emit_error(
                    DiscoveryError(
                        f"Session exceeded {config.session_timeout}s",
                        error_code=ErrorCode.SESSION_TIMEOUT,
                        context=ErrorContext(session_id=session.id),
                    ),
                    context="session",
                )
            except StatescopeError as e:
                error = e
            except Exception as e:
                error = DiscoveryError(
                    f"Unexpected error during discovery: {e}",
                    error_code=ErrorCode.SESSION_FAILED,
                    context=ErrorContext(session_id=session.id),
                    cause=e,
                )

            if error is not None:
                session.transition_to(ExplorationStatus.FAILED)
                log.error(
                    "Discovery failed",
                    error=error.message,
                    error_code=error.error_code.value,
                )
                self._emit_error(error, context="session", fatal=True)
            elif not session.status.is_terminal:
                session.transition_to(ExplorationStatus.COMPLETED)

            result = self._build_result(session, error)
            self._emit(ExplorationCompleted(metrics=result.metrics, status=session.status.value))

        log.info(
            "Discovery finished",
            status=session.status.value,
            states=len(result.states),
            transitions=len(result.transitions),
            interactions=len(result.interactions),
            coverage=round(result.coverage, 3),
        )
        return result

    def coverage(self) -> float:
        """
        Fraction of the discovered action space that was exercised.

        Per state, the available actions are the target refs seen in any
        enumeration (or the observation's action count when the state was
        never enumerated) and the explored actions are the distinct target
        refs executed from it. 0.0 when no actions are available.
        """
        total = 0
        explored = 0
        for state in self._store.states():
            available = self._available.get(state.id)
            count = len(available) if available is not None else state.observation.action_count
            total += count
            explored += min(len(self._explored.get(state.id, ())), count)
        if total == 0:
            return 0.0
        return explored / total

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def _run(self, live_context: Any, session: ExplorationSession) -> None:
        config = self.config

        try:
            initial = await self._capture(live_context)
        except ObservationError as e:
            raise DiscoveryError(
                f"Could not observe the initial state: {e.message}",
                error_code=ErrorCode.OBSERVATION_FAILED,
                context=ErrorContext(session_id=session.id),
                cause=e,
            ) from e

        state_id, is_new = self._store.insert_or_find(initial, depth=0)
        self._store.mark_initial(state_id)
        self._initial_state_id = state_id
        if self.error_detector(initial):
            self._store.mark_error(state_id)
        session.transition_to(ExplorationStatus.EXPLORING)
        self._emit(StateDiscovered(state=self._store.get_state(state_id), is_new=is_new))

        root = FrontierEntry(
            state_id=state_id,
            observation=initial,
            depth=0,
            is_error=self._store.get_state(state_id).is_error,
        )

        explorers = [_Explorer(self, 0, live_context, root, at_root=True)]
        created: List[Any] = []
        try:
            for index in range(1, config.parallel_explorers):
                if self.context_factory is None:
                    logger.warning(
                        "No context factory, running a single explorer",
                        requested=config.parallel_explorers,
                    )
                    break
                context = await self.context_factory.create(index)
                created.append(context)
                explorers.append(_Explorer(self, index, context, root, at_root=False))

            results = await asyncio.gather(
                *(explorer.run() for explorer in explorers), return_exceptions=True
            )
        finally:
            for context in created:
                try:
                    await self.context_factory.dispose(context)
                except Exception:
                    logger.exception("Failed to dispose explorer context")

        for outcome in results:
            if isinstance(outcome, BaseException):
                raise outcome

    def _build_result(
        self, session: ExplorationSession, error: Optional[StatescopeError]
    ) -> DiscoveryResult:
        store = self._store
        states = store.states()
        metrics = session.metrics
        metrics.states_discovered = len(states)
        metrics.transitions_found = store.transition_count
        metrics.exploration_time = session.elapsed_seconds
        metrics.average_state_discovery_time = (
            metrics.exploration_time / len(states) if states else 0.0
        )

        return DiscoveryResult(
            session_id=session.id,
            status=session.status,
            error=error.message if error else None,
            error_code=error.error_code.value if error else None,
            states=states,
            interactions=list(self._interactions),
            transitions=store.transitions(),
            serialized_graph=store.serialize(),
            coverage=self.coverage(),
            metrics=metrics.model_copy(),
            statistics=store.statistics(),
            initial_state_id=self._initial_state_id,
            started_at=session.start_time,
            finished_at=session.end_time,
        )

    # ------------------------------------------------------------------
    # Collaborator calls
    # ------------------------------------------------------------------

    async def _capture(self, live_context: Any) -> Observation:
        timeout = self.config.observation_timeout
        try:
            return await asyncio.wait_for(
                self.capturer.capture(
                    live_context, include_screenshot=self.config.capture_screenshots
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise ObservationError(f"Observation timed out after {timeout}s", cause=e) from e
        except StatescopeError:
            raise
        except Exception as e:
            raise ObservationError(f"Observation failed: {e}", cause=e) from e

    async def _enumerate(self, live_context: Any) -> List[ActionDescriptor]:
        timeout = self.config.observation_timeout
        try:
            actions = await asyncio.wait_for(
                self.action_provider.enumerate(
                    live_context, include_hidden=self.config.detect_hidden_elements
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise ObservationError(f"Action enumeration timed out after {timeout}s", cause=e) from e
        except StatescopeError:
            raise
        except Exception as e:
            raise ObservationError(f"Action enumeration failed: {e}", cause=e) from e
        return list(actions)

    async def _restore(self, live_context: Any, target: Observation) -> None:
        timeout = self.config.restore_timeout
        try:
            await asyncio.wait_for(self.restorer.restore(live_context, target), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ContextRestoreError(f"Context restore timed out after {timeout}s", cause=e) from e
        except StatescopeError:
            raise
        except Exception as e:
            raise ContextRestoreError(f"Context restore failed: {e}", cause=e) from e

    async def _execute(
        self,
        live_context: Any,
        action: ActionDescriptor,
        payload: Optional[ActionPayload],
        context: ErrorContext,
    ) -> float:
        """Execute one action; returns its duration in ms or raises ActionExecutionError."""
        timeout = self.config.timeout_per_interaction
        started = time.time()
        try:
            outcome = await asyncio.wait_for(
                self.executor.execute(live_context, action, payload), timeout=timeout
            )
        except asyncio.TimeoutError as e:
            raise ActionTimeoutError(
                f"Action {action.identity} timed out after {timeout}s", context=context, cause=e
            ) from e
        except StatescopeError:
            raise
        except Exception as e:
            raise ActionExecutionError(
                f"Action {action.identity} failed: {e}", context=context, cause=e
            ) from e

        elapsed_ms = (time.time() - started) * 1000
        if outcome is None:
            return elapsed_ms
        if not outcome.success:
            raise ActionExecutionError(
                f"Action {action.identity} failed: {outcome.error or 'reported failure'}",
                context=context,
            )
        return outcome.duration_ms or elapsed_ms

    async def _wait_quiescent(self, live_context: Any, log: BoundLogger) -> None:
        """Wait for the target to settle; a timeout only degrades the observation."""
        if self.quiescence is None:
            return
        timeout = self.config.quiescence_timeout
        try:
            await asyncio.wait_for(self.quiescence.wait(live_context, timeout), timeout=timeout)
        except asyncio.TimeoutError as e:
            error = QuiescenceTimeoutError(cause=e, timeout=timeout)
            self._session.metrics.quiescence_timeouts += 1
            log.debug(error.message, error_code=error.error_code.value, timeout=timeout)
        except Exception as e:
            log.warning("Quiescence wait failed, observing anyway", error=str(e))

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _emit(self, event: Any) -> None:
        if self._session is not None and event.session_id is None:
            event.session_id = self._session.id
        self._events.emit(event)

    def _emit_error(
        self,
        error: StatescopeError,
        context: str,
        explorer: int = 0,
        fatal: bool = False,
    ) -> None:
        self._emit(
            ErrorEvent(
                explorer=explorer,
                error=error.message,
                context=context,
                error_code=error.error_code.value,
                fatal=fatal,
            )
        )

    def _record_interaction(self, interaction: Interaction) -> None:
        self._interactions.append(interaction)
        metrics = self._session.metrics
        metrics.interactions_performed += 1
        if not interaction.successful:
            metrics.failed_interactions += 1

    def _note_available(self, state_id: StateID, actions: List[ActionDescriptor]) -> None:
        self._available.setdefault(state_id, set()).update(a.target_ref for a in actions)

    def _note_explored(self, state_id: StateID, action: ActionDescriptor) -> None:
        self._explored.setdefault(state_id, set()).add(action.target_ref)

    def _interaction_budget_spent(self) -> bool:
        limit = self.config.max_interactions
        return limit is not None and len(self._interactions) >= limit


class _Explorer:
    """One exploration loop with a private frontier, strategist and live context."""

    def __init__(
        self,
        engine: DiscoveryEngine,
        index: int,
        live_context: Any,
        root: FrontierEntry,
        at_root: bool,
    ) -> None:
        config = engine.config
        self.engine = engine
        self.index = index
        self.live_context = live_context
        self.frontier: List[FrontierEntry] = [root]
        self.processed: Set[StateID] = set()
        self.current_state_id: Optional[StateID] = root.state_id if at_root else None
        seed = None if config.random_seed is None else config.random_seed + index
        self.strategist = Strategist(config.strategy, max_depth=config.max_depth, seed=seed)
        self.log = logger.bind(session_id=engine.session.id, explorer=index)

    async def run(self) -> None:
        engine = self.engine
        try:
            while self.frontier:
                if engine.stop_requested:
                    self.log.info("Stopping at frontier boundary", frontier_size=len(self.frontier))
                    break
                if engine.store.is_full:
                    self.log.info("State budget reached", max_states=engine.store.max_states)
                    break
                if engine._interaction_budget_spent():
                    self.log.info("Interaction budget reached")
                    break

                entry = self.strategist.select_next_frontier(self.frontier)
                if entry.depth > engine.config.max_depth or entry.state_id in self.processed:
                    continue
                self.processed.add(entry.state_id)

                await self._process(entry)

                engine._emit(
                    ExplorationProgress(
                        explorer=self.index,
                        discovered=len(engine.store),
                        depth=entry.depth,
                        frontier_size=len(self.frontier),
                    )
                )
        except BaseException:
            # Let the other explorers wind down before the error surfaces
            engine._stop.set()
            raise

    async def _process(self, entry: FrontierEntry) -> None:
        engine = self.engine
        config = engine.config
        store = engine.store

        if not await self._reach(entry):
            return

        try:
            actions = await engine._enumerate(self.live_context)
        except ObservationError as e:
            e.context.state_id = entry.state_id
            self.log.warning("Skipping state, action enumeration failed", state_id=entry.state_id, error=e.message)
            engine._emit_error(e, context="enumerate", explorer=self.index)
            return

        store.record_action_space(entry.state_id, actions)
        engine._note_available(entry.state_id, actions)
        self.log.debug("Exploring state", state_id=entry.state_id, depth=entry.depth, actions=len(actions))

        performed = 0
        while True:
            if engine.stop_requested or store.is_full or engine._interaction_budget_spent():
                break
            if config.max_actions_per_state is not None and performed >= config.max_actions_per_state:
                break
            if not self.strategist.unexplored_count(entry.state_id, actions):
                break
            if not await self._reach(entry):
                return
            action = self.strategist.select_next_action(entry.state_id, actions)
            if action is None:
                break
            performed += 1
            await self._try_action(entry, action)

        if not store.transitions_from(entry.state_id):
            store.mark_terminal(entry.state_id)

    async def _reach(self, entry: FrontierEntry) -> bool:
        """Put the live context into ``entry``'s state; False abandons the entry."""
        if self.current_state_id == entry.state_id:
            return True

        engine = self.engine
        try:
            await engine._restore(self.live_context, entry.observation)
            if engine.config.verify_restore:
                await self._verify_restore(entry)
        except (ContextRestoreError, ObservationError) as e:
            e.context.state_id = entry.state_id
            e.context.explorer = self.index
            self.current_state_id = None
            self.log.warning("Abandoning state, context restore failed", state_id=entry.state_id, error=e.message)
            engine._emit_error(e, context="restore", explorer=self.index)
            return False

        self.current_state_id = entry.state_id
        return True

    async def _verify_restore(self, entry: FrontierEntry) -> None:
        engine = self.engine
        observed = await engine._capture(self.live_context)
        if engine.comparator.is_same_state(entry.observation, observed):
            return

        if engine.config.replay_on_restore_mismatch:
            self.log.info("Restored context differs, replaying shortest path", state_id=entry.state_id)
            if await self._replay(entry):
                return

        raise ContextRestoreError(
            f"Restored context does not match state {entry.state_id}",
            context=ErrorContext(state_id=entry.state_id, explorer=self.index),
        )

    async def _replay(self, entry: FrontierEntry) -> bool:
        """Restore the initial state, then replay the shortest recorded path.

        Replayed steps are navigation only: they bypass the strategist and
        are not recorded as interactions, so an attempted action may run again.
        """
        engine = self.engine
        store = engine.store
        initial_id = engine._initial_state_id
        path = store.shortest_path_transitions(initial_id, entry.state_id) if initial_id else None
        if path is None:
            return False

        await engine._restore(self.live_context, store.get_state(initial_id).observation)
        for step in path:
            action = ActionDescriptor(target_ref=step.target_ref, kind=step.action_kind)
            context = ErrorContext(state_id=step.from_state_id, explorer=self.index, action=action.identity)
            try:
                await engine._execute(
                    self.live_context, action, payload_for(action, engine.config.input_text), context
                )
            except ActionExecutionError as e:
                raise ContextRestoreError(
                    f"Path replay failed at {action.identity}: {e.message}", context=context, cause=e
                ) from e
            await engine._wait_quiescent(self.live_context, self.log)

        observed = await engine._capture(self.live_context)
        return engine.comparator.is_same_state(entry.observation, observed)

    async def _try_action(self, entry: FrontierEntry, action: ActionDescriptor) -> None:
        engine = self.engine
        config = engine.config
        payload = payload_for(action, config.input_text)
        context = ErrorContext(
            session_id=engine.session.id,
            explorer=self.index,
            state_id=entry.state_id,
            action=action.identity,
        )

        engine._note_explored(entry.state_id, action)
        started = time.time()
        try:
            duration_ms = await engine._execute(self.live_context, action, payload, context)
        except ActionExecutionError as e:
            self.current_state_id = None
            interaction = Interaction(
                state_id=entry.state_id,
                action=action,
                payload=payload,
                successful=False,
                duration_ms=(time.time() - started) * 1000,
                error=e.message,
                explorer=self.index,
            )
            engine._record_interaction(interaction)
            self.log.warning(
                "Action failed",
                state_id=entry.state_id,
                action=action.identity,
                error=e.message,
                error_code=e.error_code.value,
            )
            engine._emit(InteractionFailed(explorer=self.index, interaction=interaction, error=e.message))
            return

        # The action ran; the live context is restored before the next one
        self.current_state_id = None

        if config.simulate_user_behavior and config.user_behavior_delay > 0:
            await asyncio.sleep(config.user_behavior_delay)
        await engine._wait_quiescent(self.live_context, self.log)

        interaction = Interaction(
            state_id=entry.state_id,
            action=action,
            payload=payload,
            duration_ms=duration_ms,
            explorer=self.index,
        )

        try:
            observation = await engine._capture(self.live_context)
        except ObservationError as e:
            e.context.state_id = entry.state_id
            e.context.action = action.identity
            self.log.warning("Observation after action failed", action=action.identity, error=e.message)
            engine._emit_error(e, context="observe", explorer=self.index)
            engine._record_interaction(interaction)
            engine._emit(InteractionCompleted(explorer=self.index, interaction=interaction))
            return

        comparison = engine.comparator.compare(entry.observation, observation)
        if comparison.degraded:
            engine.session.metrics.degraded_comparisons += 1
            self.log.debug(
                "Comparison degraded, visual diff unavailable",
                action=action.identity,
                error_code=ErrorCode.COMPARISON_DEGRADED.value,
            )

        if comparison.identical:
            interaction.resulting_state_id = entry.state_id
            if config.record_self_loops:
                transition = engine.store.record_transition(
                    entry.state_id, entry.state_id, action.kind, action.target_ref
                )
                engine._emit(TransitionFound(explorer=self.index, transition=transition))
        else:
            try:
                to_id, is_new = self._resolve(observation, comparison, entry.depth + 1)
            except StateCapacityError:
                self.log.info("State capacity reached, observation dropped", action=action.identity)
                engine._record_interaction(interaction)
                engine._emit(InteractionCompleted(explorer=self.index, interaction=interaction))
                return

            interaction.resulting_state_id = to_id
            if is_new:
                if engine.error_detector(observation):
                    engine.store.mark_error(to_id)
                state = engine.store.get_state(to_id)
                self.frontier.append(
                    FrontierEntry(
                        state_id=to_id,
                        observation=observation,
                        depth=entry.depth + 1,
                        is_error=state.is_error,
                    )
                )
                engine._emit(StateDiscovered(explorer=self.index, state=state, is_new=True))

            transition = engine.store.record_transition(
                entry.state_id, to_id, action.kind, action.target_ref
            )
            engine._emit(TransitionFound(explorer=self.index, transition=transition))

        engine._record_interaction(interaction)
        engine._emit(InteractionCompleted(explorer=self.index, interaction=interaction))

    def _resolve(
        self, observation: Observation, comparison: Comparison, depth: int
    ) -> Tuple[StateID, bool]:
        """Map a non-identical observation to a known or a new state."""
        engine = self.engine
        config = engine.config
        store = engine.store

        if config.similarity_merge and comparison.overall_similarity >= config.merge_threshold:
            similar = store.find_similar_state(observation, engine.comparator)
            if similar is not None:
                store.record_visit(similar)
                return similar, False

        return store.insert_or_find(observation, depth=depth)


def run_discovery(engine: DiscoveryEngine, live_context: Any = None) -> DiscoveryResult:
    """Run ``engine.discover`` to completion from synchronous code."""
    return asyncio.run(engine.discover(live_context))
