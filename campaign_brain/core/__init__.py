"""Plan-validate-dispatch core and its error types."""

from .errors import (
    CoreError,
    ErrorCode,
    Severity,
    UpstreamFetchError,
    PlanParseError,
    ReasoningError,
    InvalidPlanError,
    DispatchError,
    PersistenceError,
    MessagingError,
    NotFoundError,
    InvalidRequestError,
    ConfigurationError,
    to_core_error,
)
from .validation import validate_actions, to_int_cents
from .report import build_report

__all__ = [
    # Error classes
    "CoreError",
    "ErrorCode",
    "Severity",
    "UpstreamFetchError",
    "PlanParseError",
    "ReasoningError",
    "InvalidPlanError",
    "DispatchError",
    "PersistenceError",
    "MessagingError",
    "NotFoundError",
    "InvalidRequestError",
    "ConfigurationError",
    "to_core_error",
    # Pure pipeline stages
    "validate_actions",
    "to_int_cents",
    "build_report",
]
