"""
Interfaces of the collaborators the engine drives.

Enumerating actions, executing them, capturing observations, restoring
context and waiting for quiescence all depend on the concrete substrate
(a browser, a device, an emulator). The engine only needs the methods
below; ``live_context`` is whatever handle the substrate uses.
"""

from __future__ import annotations

from typing import Any, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel

from statescope.explorer.models import ActionDescriptor, ActionPayload, Observation


class ActionOutcome(BaseModel):
    """What an executor reports back for one action."""

    success: bool = True
    duration_ms: float = 0.0
    error: Optional[str] = None


@runtime_checkable
class ActionSpaceProvider(Protocol):
    async def enumerate(
        self, live_context: Any, *, include_hidden: bool = False
    ) -> List[ActionDescriptor]:
        """Return the candidate actions available in the live context."""
        ...


@runtime_checkable
class ActionExecutor(Protocol):
    async def execute(
        self,
        live_context: Any,
        action: ActionDescriptor,
        payload: Optional[ActionPayload] = None,
    ) -> ActionOutcome:
        """Perform ``action``. May raise or return ``success=False`` on failure."""
        ...


@runtime_checkable
class ObservationCapturer(Protocol):
    async def capture(
        self, live_context: Any, *, include_screenshot: bool = True
    ) -> Observation:
        ...


@runtime_checkable
class ContextRestorer(Protocol):
    async def restore(self, live_context: Any, target: Observation) -> None:
        """Re-establish location and persisted context of ``target`` directly."""
        ...


@runtime_checkable
class QuiescenceWaiter(Protocol):
    async def wait(self, live_context: Any, timeout: float) -> None:
        """Return once the target stopped changing, or raise on timeout."""
        ...


@runtime_checkable
class VisualDiff(Protocol):
    def similarity(self, fingerprint_a: str, fingerprint_b: str) -> float:
        """0-1 visual similarity; raises on malformed input."""
        ...


@runtime_checkable
class ContextFactory(Protocol):
    """Creates isolated live contexts for additional parallel explorers."""

    async def create(self, index: int) -> Any:
        ...

    async def dispose(self, live_context: Any) -> None:
        ...
