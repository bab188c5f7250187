from __future__ import annotations
from typing import Any, Dict, Optional
from enum import Enum


class Severity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class ErrorCode(str, Enum):
    UPSTREAM_FETCH_FAILED = "upstream_fetch_failed"
    PLAN_PARSE_FAILED = "plan_parse_failed"
    REASONING_FAILED = "reasoning_failed"
    INVALID_PLAN = "invalid_plan"
    DISPATCH_FAILED = "dispatch_failed"
    PERSISTENCE_FAILED = "persistence_failed"
    MESSAGING_FAILED = "messaging_failed"
    NOT_FOUND = "not_found"
    INVALID_REQUEST = "invalid_request"
    CONFIGURATION_ERROR = "configuration_error"
    UNKNOWN_ERROR = "unknown_error"


class CoreError(Exception):
    """Structured error used across the pipeline and its adapters.

    Attributes:
        message: Human-readable message
        error_code: ErrorCode enum value (stable, safe to return to callers)
        severity: Severity enum value
        context: Optional structured context payload safe to log/serialize
        original_error: Optional wrapped exception
        fatal: Whether the error aborts an orchestration run
    """

    default_code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    default_fatal: bool = True

    def __init__(
        self,
        message: str = "",
        error_code: Optional[ErrorCode] = None,
        severity: Severity = Severity.medium,
        *,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
        fatal: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code if error_code is not None else self.default_code
        self.severity = severity
        self.context = context or {}
        self.original_error = original_error
        self.fatal = self.default_fatal if fatal is None else fatal

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "error_code": self.error_code.value,
            "severity": self.severity.value,
            "message": self.message,
            "fatal": self.fatal,
            "context": self.context,
        }
        if self.original_error is not None:
            data["original_error"] = type(self.original_error).__name__
        return data

    def __str__(self) -> str:  # pragma: no cover - convenience
        base = f"[{self.error_code.value}] {self.message}"
        if self.original_error is not None:
            return f"{base} (Original: {self.original_error})"
        return base


class UpstreamFetchError(CoreError):
    """A platform read failed. Never fatal: the caller degrades it to a placeholder."""

    default_code = ErrorCode.UPSTREAM_FETCH_FAILED
    default_fatal = False

    def __init__(
        self,
        message: str,
        *,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        ctx = context.copy() if context else {}
        if source is not None:
            ctx["source"] = source
        if status_code is not None:
            ctx["status_code"] = status_code
        super().__init__(
            message,
            severity=Severity.low,
            context=ctx,
            original_error=original_error,
        )
        self.source = source
        self.status_code = status_code


class PlanParseError(CoreError):
    default_code = ErrorCode.PLAN_PARSE_FAILED

    def __init__(
        self,
        message: str,
        *,
        raw_reply: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        ctx: Dict[str, Any] = {}
        if raw_reply is not None:
            # enough to debug a bad reply without dumping it whole into logs
            ctx["raw_reply"] = raw_reply[:500]
        super().__init__(
            message,
            severity=Severity.high,
            context=ctx,
            original_error=original_error,
        )


class ReasoningError(CoreError):
    default_code = ErrorCode.REASONING_FAILED

    def __init__(self, message: str, *, original_error: Optional[BaseException] = None) -> None:
        super().__init__(message, severity=Severity.high, original_error=original_error)


class InvalidPlanError(CoreError):
    default_code = ErrorCode.INVALID_PLAN

    def __init__(
        self,
        message: str,
        *,
        action_type: Optional[str] = None,
        field_name: Optional[str] = None,
        field_value: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        ctx = context.copy() if context else {}
        if action_type is not None:
            ctx["action_type"] = action_type
        if field_name is not None:
            ctx["field_name"] = field_name
        if field_value is not None:
            ctx["field_value"] = field_value
        super().__init__(message, severity=Severity.high, context=ctx)
        self.action_type = action_type
        self.field_name = field_name


class DispatchError(CoreError):
    default_code = ErrorCode.DISPATCH_FAILED

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            message,
            severity=Severity.high,
            context={"status_code": status_code, "body": body},
            original_error=original_error,
        )
        self.status_code = status_code
        self.body = body


class PersistenceError(CoreError):
    default_code = ErrorCode.PERSISTENCE_FAILED
    default_fatal = False

    def __init__(
        self,
        message: str,
        *,
        table: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            message,
            severity=Severity.low,
            context={"table": table} if table else {},
            original_error=original_error,
        )


class MessagingError(CoreError):
    default_code = ErrorCode.MESSAGING_FAILED
    default_fatal = False

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            message,
            severity=Severity.low,
            context={"status_code": status_code} if status_code is not None else {},
            original_error=original_error,
        )


class NotFoundError(CoreError):
    default_code = ErrorCode.NOT_FOUND

    def __init__(self, message: str, *, entity_id: Optional[str] = None) -> None:
        super().__init__(
            message,
            severity=Severity.medium,
            context={"entity_id": entity_id} if entity_id is not None else {},
        )


class InvalidRequestError(CoreError):
    default_code = ErrorCode.INVALID_REQUEST

    def __init__(self, message: str, *, field_name: Optional[str] = None) -> None:
        super().__init__(
            message,
            severity=Severity.low,
            context={"field_name": field_name} if field_name else {},
        )


class ConfigurationError(CoreError):
    default_code = ErrorCode.CONFIGURATION_ERROR


def to_core_error(exc: BaseException) -> CoreError:
    """Convert an arbitrary exception to a CoreError.

    CoreError instances are returned as is; anything else is wrapped as a
    fatal UNKNOWN_ERROR carrying the original exception.
    """
    if isinstance(exc, CoreError):
        return exc
    return CoreError(
        message=str(exc),
        error_code=ErrorCode.UNKNOWN_ERROR,
        severity=Severity.high,
        original_error=exc,
    )
