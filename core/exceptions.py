"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the worker runtime.

- Provides clear exception hierarchy
- Separates boot-time fatal errors from transient ones
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
WorkerError (base)
├── ConfigurationError
│   └── ConfigValidationError
├── StatusStoreError
└── OrchestrationError
    ├── StateTransitionError
    ├── FacilityLoadError
    ├── DuplicateKeyError
    ├── FacilityRuntimeError
    └── ShutdownError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, may impact operations."""

    CRITICAL = "critical"
    """Critical issue, the process must not continue."""


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Error can be recovered from locally."""

    TRANSIENT = "transient"
    """Temporary error, normal operation continues."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, the process must stop."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class WorkerError(Exception):
    """
    Base exception for all worker runtime errors.

    All exceptions carry:
    - severity: how loud to be about it
    - context: for debugging
    - classification: for error handling decisions
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_recoverable(self) -> bool:
        """Check if error is recoverable."""
        return self.classification in (
            ErrorClassification.RECOVERABLE,
            ErrorClassification.TRANSIENT,
        )

    @property
    def is_fatal(self) -> bool:
        """Check if error should terminate the process."""
        return self.classification == ErrorClassification.NON_RECOVERABLE

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def to_log_format(self) -> str:
        """Format exception for structured logging."""
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        line = f"[{self.severity.value.upper()}] {type(self).__name__}: {self.message}"
        if ctx_str:
            line += f" | {ctx_str}"
        return line


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(WorkerError):
    """Error in configuration."""

    default_severity = Severity.CRITICAL
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        path: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if source:
            context["source"] = source
        if path:
            context["path"] = path

        super().__init__(message, context=context, **kwargs)


class ConfigValidationError(ConfigurationError):
    """
    Configuration document does not match its example.

    Carries every offending key path so the whole problem can be
    reported at once instead of one key per restart.
    """

    def __init__(
        self,
        source: str,
        missing_keys: Optional[List[str]] = None,
        rule_failures: Optional[List[str]] = None,
        **kwargs,
    ):
        self.source = source
        self.missing_keys = list(missing_keys or [])
        self.rule_failures = list(rule_failures or [])

        context = kwargs.pop("context", {})
        context["missing_keys"] = self.missing_keys
        context["rule_failures"] = self.rule_failures

        problems = len(self.missing_keys) + len(self.rule_failures)
        super().__init__(
            f"Invalid configuration '{source}': {problems} problem(s)",
            source=source,
            context=context,
            **kwargs,
        )

    def report(self) -> str:
        """Human-readable report naming every offending key."""
        lines = [
            "=" * 60,
            f"CONFIGURATION ERROR: {self.source}",
            "=" * 60,
        ]
        if self.missing_keys:
            lines.append("Missing keys (present in example, absent in config):")
            lines.extend(f"  - {key}" for key in self.missing_keys)
        if self.rule_failures:
            lines.append("Rule violations:")
            lines.extend(f"  - {failure}" for failure in self.rule_failures)
        lines.append("=" * 60)
        return "\n".join(lines)


# ============================================================
# STATUS ERRORS
# ============================================================

class StatusStoreError(WorkerError):
    """Status snapshot could not be written."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str,
        prefix: Optional[str] = None,
        path: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if prefix:
            context["prefix"] = prefix
        if path:
            context["path"] = path

        super().__init__(message, context=context, **kwargs)


# ============================================================
# ORCHESTRATION ERRORS
# ============================================================

class OrchestrationError(WorkerError):
    """Base class for lifecycle orchestration errors."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE


class StateTransitionError(OrchestrationError):
    """Invalid lifecycle transition or reentrant lifecycle call."""

    def __init__(
        self,
        message: str,
        from_state: Optional[str] = None,
        to_state: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if from_state:
            context["from_state"] = from_state
        if to_state:
            context["to_state"] = to_state

        super().__init__(message, context=context, **kwargs)


class FacilityLoadError(OrchestrationError):
    """Facility implementation not found or failed to construct."""

    default_severity = Severity.CRITICAL

    def __init__(
        self,
        message: str,
        facility: Optional[str] = None,
        label: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if facility:
            context["facility"] = facility
        if label is not None:
            context["label"] = label

        super().__init__(message, context=context, **kwargs)


class DuplicateKeyError(OrchestrationError):
    """Two facilities resolve to the same identity key."""

    default_severity = Severity.CRITICAL

    def __init__(self, key: str, **kwargs):
        self.key = key
        context = kwargs.pop("context", {})
        context["key"] = key
        super().__init__(
            kwargs.pop("message", f"ERR_FACILITY_DUP: {key}"),
            context=context,
            **kwargs,
        )


class FacilityRuntimeError(OrchestrationError):
    """A facility's own start/stop reported failure."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        self.key = key
        self.operation = operation
        context = kwargs.pop("context", {})

        if key:
            context["key"] = key
        if operation:
            context["operation"] = operation

        super().__init__(message, context=context, **kwargs)


class ShutdownError(OrchestrationError):
    """Shutdown could not complete cleanly."""

    default_severity = Severity.MEDIUM

    def __init__(
        self,
        message: str,
        failed: Optional[List[str]] = None,
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        self.failed = list(failed or [])
        context = kwargs.pop("context", {})

        if self.failed:
            context["failed"] = self.failed
        if timeout_seconds is not None:
            context["timeout_seconds"] = timeout_seconds

        super().__init__(message, context=context, **kwargs)


# ============================================================
# EXCEPTION UTILITIES
# ============================================================

def wrap_exception(
    exc: BaseException,
    wrapper_class: type = WorkerError,
    message: Optional[str] = None,
    **kwargs,
) -> WorkerError:
    """Wrap a standard exception in a WorkerError."""
    msg = message or f"{type(exc).__name__}: {exc}"
    return wrapper_class(message=msg, cause=exc, **kwargs)


__all__ = [
    "Severity",
    "ErrorClassification",
    "WorkerError",
    "ConfigurationError",
    "ConfigValidationError",
    "StatusStoreError",
    "OrchestrationError",
    "StateTransitionError",
    "FacilityLoadError",
    "DuplicateKeyError",
    "FacilityRuntimeError",
    "ShutdownError",
    "wrap_exception",
]
