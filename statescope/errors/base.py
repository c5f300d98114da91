"""Custom exception hierarchy for statescope.

statescope errors carry:
- Structured error codes for programmatic handling
- Exploration context (session, explorer, state, action) for debugging
- Actionable suggestions for recovery
- A recoverable flag telling the engine whether the session may continue

All statescope errors inherit from StatescopeError.

Example:
    try:
        store.record_transition(a, b, ActionKind.LINK, "#home")
    except StatescopeError as e:
        print(f"Error [{e.error_code.value}]: {e.message}")
        for suggestion in e.suggestions:
            print(f"  - {suggestion}")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes for statescope.

    Error codes are organized by category:
    - E0xx: Action errors (execution, quiescence)
    - E1xx: Observation errors (capture, restore, comparison)
    - E2xx: Graph errors (integrity, capacity)
    - E3xx: Session errors
    - E4xx: Configuration errors
    - E9xx: Unknown/internal errors
    """

    # Action errors (E0xx)
    ACTION_FAILED = "E001"
    ACTION_TIMEOUT = "E002"
    QUIESCENCE_TIMEOUT = "E003"

    # Observation errors (E1xx)
    OBSERVATION_FAILED = "E101"
    RESTORE_FAILED = "E102"
    COMPARISON_DEGRADED = "E103"

    # Graph errors (E2xx)
    REFERENTIAL_INTEGRITY = "E201"
    STATE_CAPACITY = "E202"

    # Session errors (E3xx)
    SESSION_FAILED = "E301"
    SESSION_TIMEOUT = "E302"
    INVALID_STATUS_TRANSITION = "E303"

    # Configuration errors (E4xx)
    INVALID_CONFIG = "E401"

    UNKNOWN = "E999"

    @property
    def category(self) -> str:
        """Get the error category name."""
        code_num = int(self.value[1:])
        if code_num < 100:
            return "action"
        elif code_num < 200:
            return "observation"
        elif code_num < 300:
            return "graph"
        elif code_num < 400:
            return "session"
        elif code_num < 500:
            return "configuration"
        else:
            return "unknown"


@dataclass
class ErrorContext:
    """Structured context captured when an error occurs.

    Attributes:
        session_id: Exploration session the error belongs to
        explorer: Index of the explorer loop that raised it
        state_id: State the explorer was working from
        action: Identity of the action involved (``kind:target_ref``)
        extra: Additional context-specific information
        timestamp: When the error occurred
        traceback: Full stack trace (if available)
    """

    session_id: str | None = None
    explorer: int | None = None
    state_id: str | None = None
    action: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
    traceback: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for serialization."""
        result = {
            "session_id": self.session_id,
            "explorer": self.explorer,
            "state_id": self.state_id,
            "action": self.action,
            "extra": self.extra,
            "timestamp": self.timestamp.isoformat(),
            "traceback": self.traceback,
        }
        return {k: v for k, v in result.items() if v is not None}

    def format_location(self) -> str:
        """Format the error location as a readable string."""
        parts = []
        if self.session_id:
            parts.append(f"session={self.session_id}")
        if self.explorer is not None:
            parts.append(f"explorer={self.explorer}")
        if self.state_id:
            parts.append(f"state={self.state_id}")
        if self.action:
            parts.append(f"action={self.action}")
        return " > ".join(parts) if parts else "unknown location"


class StatescopeError(Exception):
    """Base exception for all statescope errors.

    Attributes:
        error_code: Unique ErrorCode for this error type
        message: Human-readable error description
        context: ErrorContext with exploration details
        suggestions: List of actionable steps to resolve the issue
        recoverable: Whether the exploration loop may continue
        cause: The underlying exception (if any)
    """

    error_code: ErrorCode = ErrorCode.UNKNOWN
    default_message: str = "An unexpected error occurred"
    default_suggestions: list[str] = []
    default_recoverable: bool = True

    def __init__(
        self,
        message: str | None = None,
        error_code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
        recoverable: bool | None = None,
        suggestions: list[str] | None = None,
        **extra_context: Any,
    ) -> None:
        self.message = message or self.default_message
        self.error_code = error_code or self.error_code
        self.context = context or ErrorContext()
        self.cause = cause
        self.recoverable = self.default_recoverable if recoverable is None else recoverable
        self._suggestions = suggestions

        if extra_context:
            self.context.extra.update(extra_context)

        super().__init__(self.message)

    @property
    def suggestions(self) -> list[str]:
        """Get actionable suggestions for resolving this error."""
        if self._suggestions is not None:
            return self._suggestions
        return self.default_suggestions.copy()

    def __str__(self) -> str:
        parts = [f"[{self.error_code.value}] {self.message}"]

        location = self.context.format_location()
        if location != "unknown location":
            parts.append(f"at {location}")

        return " | ".join(parts)

    def format_verbose(self) -> str:
        """Format error with full details including suggestions."""
        lines = [
            f"Error [{self.error_code.value}]: {self.message}",
            "",
        ]

        location = self.context.format_location()
        if location != "unknown location":
            lines.append(f"Location: {location}")

        if self.cause is not None:
            lines.append(f"Caused by: {type(self.cause).__name__}: {self.cause}")

        if self.suggestions:
            lines.append("")
            lines.append("Suggestions:")
            for suggestion in self.suggestions:
                lines.append(f"  - {suggestion}")

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error_code": self.error_code.value,
            "error_type": self.__class__.__name__,
            "message": self.message,
            "recoverable": self.recoverable,
            "suggestions": self.suggestions,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


class ActionExecutionError(StatescopeError):
    """The action executor reported a failure for a single action.

    Never fatal: the engine records a failed interaction and moves on
    to the next candidate action.
    """

    error_code = ErrorCode.ACTION_FAILED
    default_message = "Action execution failed"
    default_suggestions = [
        "Check that the target reference is still present in the live context",
        "Lower the action confidence threshold of the action-space provider",
    ]


class ActionTimeoutError(ActionExecutionError):
    """The action did not finish within ``timeout_per_interaction``."""

    error_code = ErrorCode.ACTION_TIMEOUT
    default_message = "Action timed out"
    default_suggestions = [
        "Increase timeout_per_interaction in the discovery configuration",
        "Check whether the action opens a long-running operation",
    ]


class QuiescenceTimeoutError(StatescopeError):
    """The target kept changing past ``quiescence_timeout``.

    The engine observes on a best-effort basis after this error.
    """

    error_code = ErrorCode.QUIESCENCE_TIMEOUT
    default_message = "Target did not settle before the quiescence timeout"
    default_suggestions = [
        "Increase quiescence_timeout",
        "Exclude animated regions from the visual fingerprint",
    ]


class ObservationError(StatescopeError):
    """Capturing or enumerating the live context failed."""

    error_code = ErrorCode.OBSERVATION_FAILED
    default_message = "Failed to observe the target"
    default_suggestions = [
        "Verify the live context is still attached to the target",
        "Increase observation_timeout",
    ]


class ContextRestoreError(StatescopeError):
    """Re-establishing the context of a known state failed."""

    error_code = ErrorCode.RESTORE_FAILED
    default_message = "Failed to restore context for a known state"
    default_suggestions = [
        "Increase restore_timeout",
        "Enable replay_on_restore_mismatch for states that depend on in-memory steps",
    ]


class ReferentialIntegrityError(StatescopeError):
    """A transition referenced a state the store does not know.

    This signals a defect in the caller and is fatal to the session.
    """

    error_code = ErrorCode.REFERENTIAL_INTEGRITY
    default_message = "Transition references an unknown state"
    default_recoverable = False
    default_suggestions = [
        "Insert both endpoint states with insert_or_find before recording the transition",
    ]


class StateCapacityError(StatescopeError):
    """The store already holds ``max_states`` states."""

    error_code = ErrorCode.STATE_CAPACITY
    default_message = "State capacity reached"
    default_suggestions = ["Increase max_states to explore a larger state space"]


class InvalidStatusTransitionError(StatescopeError):
    """A session status change would leave a terminal status."""

    error_code = ErrorCode.INVALID_STATUS_TRANSITION
    default_message = "Invalid session status transition"
    default_recoverable = False


class DiscoveryError(StatescopeError):
    """A session-fatal failure of the exploration loop."""

    error_code = ErrorCode.SESSION_FAILED
    default_message = "Discovery session failed"
    default_recoverable = False
    default_suggestions = [
        "Check that the initial context is reachable",
        "Inspect the partial graph in the DiscoveryResult for the last good state",
    ]


class ConfigurationError(StatescopeError):
    """The discovery configuration or collaborator wiring is invalid."""

    error_code = ErrorCode.INVALID_CONFIG
    default_message = "Invalid discovery configuration"
    default_recoverable = False
