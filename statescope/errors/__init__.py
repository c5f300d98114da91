"""Error hierarchy for statescope."""

from statescope.errors.base import (
    ActionExecutionError,
    ActionTimeoutError,
    ConfigurationError,
    ContextRestoreError,
    DiscoveryError,
    ErrorCode,
    ErrorContext,
    InvalidStatusTransitionError,
    ObservationError,
    QuiescenceTimeoutError,
    ReferentialIntegrityError,
    StateCapacityError,
    StatescopeError,
)

__all__ = [
    "ErrorCode",
    "ErrorContext",
    "StatescopeError",
    "ActionExecutionError",
    "ActionTimeoutError",
    "QuiescenceTimeoutError",
    "ObservationError",
    "ContextRestoreError",
    "ReferentialIntegrityError",
    "StateCapacityError",
    "InvalidStatusTransitionError",
    "DiscoveryError",
    "ConfigurationError",
]
