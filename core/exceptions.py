"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Error taxonomy for the trade-decision engine.

Each error carries a severity and a recoverability
classification so the orchestration loop can decide whether
to skip an asset, skip a cycle, or fail loudly.

============================================================
EXCEPTION HIERARCHY
============================================================
TradingException (base)
├── ConfigurationError
├── ProviderUnavailableError      (one dependency failed)
│   └── CircuitOpenError          (dependency excluded by breaker)
├── AllProvidersFailedError       (every price provider failed)
├── OracleUnavailableError        (scoring oracle failed/invalid)
├── RepositoryError               (position store unreachable)
├── InvalidMetricError            (degenerate numeric input)
├── ExecutionError                (executor rejected/failed)
└── OpportunityDecodeError        (malformed external message)

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for alerting."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Skip the unit of work, continue the cycle."""

    TRANSIENT = "transient"
    """Temporary error, retry may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """Requires intervention."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class TradingException(Exception):
    """
    Base exception for all trade engine errors.

    All exceptions carry:
    - severity: for alerting
    - classification: for retry/skip decisions
    - context: for debugging
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

        if cause is not None:
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
    def is_transient(self) -> bool:
        return self.classification == ErrorClassification.TRANSIENT

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
            line = f"{line} | {ctx_str}"
        return line


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(TradingException):
    """Invalid or missing configuration value."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", None) or {}
        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]
        super().__init__(message, context=context, **kwargs)


# ============================================================
# DEPENDENCY ERRORS
# ============================================================

class ProviderUnavailableError(TradingException):
    """
    A single external dependency failed.

    Raised for timeouts, transport errors, unusable responses and
    open circuits. Callers treat it as transient for that provider.
    """

    default_severity = Severity.LOW
    default_classification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", None) or {}
        if provider:
            context["provider"] = provider
        super().__init__(message, context=context, **kwargs)
        self.provider = provider


class CircuitOpenError(ProviderUnavailableError):
    """The circuit for a dependency key is open; no call was made."""

    def __init__(self, key: str, retry_after_seconds: float = 0.0, **kwargs):
        context = kwargs.pop("context", None) or {}
        context["circuit_key"] = key
        context["retry_after_seconds"] = round(retry_after_seconds, 3)
        super().__init__(
            f"Circuit open for {key}",
            provider=kwargs.pop("provider", None),
            context=context,
            **kwargs,
        )
        self.key = key
        self.retry_after_seconds = retry_after_seconds


class AllProvidersFailedError(TradingException):
    """Every configured price provider failed for an asset."""

    default_severity = Severity.MEDIUM
    default_classification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        asset_id: str,
        failures: Mapping[str, str],
        **kwargs,
    ):
        self.asset_id = asset_id
        self.failures: Dict[str, str] = dict(failures)
        summary = "; ".join(f"{name}: {reason}" for name, reason in self.failures.items())
        context = kwargs.pop("context", None) or {}
        context["asset_id"] = asset_id
        context["failures"] = self.failures
        super().__init__(
            f"All price providers failed for {asset_id} ({summary or 'no providers'})",
            context=context,
            **kwargs,
        )


class OracleUnavailableError(TradingException):
    """The scoring oracle failed, timed out, or returned an invalid score."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.RECOVERABLE


# ============================================================
# PERSISTENCE ERRORS
# ============================================================

class RepositoryError(TradingException):
    """Position repository unreachable or rejected an operation."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", None) or {}
        if operation:
            context["operation"] = operation
        super().__init__(message, context=context, **kwargs)
        self.operation = operation


# ============================================================
# CALCULATION ERRORS
# ============================================================

class InvalidMetricError(TradingException):
    """
    Degenerate numeric input (zero volatility, zero entry value,
    non-finite result). Never silently coerced.
    """

    default_severity = Severity.MEDIUM
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(self, message: str, metric: Optional[str] = None, value: Any = None, **kwargs):
        context = kwargs.pop("context", None) or {}
        if metric:
            context["metric"] = metric
        if value is not None:
            context["value"] = str(value)
        super().__init__(message, context=context, **kwargs)
        self.metric = metric


# ============================================================
# EXECUTION / INGESTION ERRORS
# ============================================================

class ExecutionError(TradingException):
    """Trade executor failed to fill an entry or exit."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT


class OpportunityDecodeError(TradingException):
    """External opportunity payload could not be decoded."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.RECOVERABLE


__all__ = [
    "Severity",
    "ErrorClassification",
    "TradingException",
    "ConfigurationError",
    "ProviderUnavailableError",
    "CircuitOpenError",
    "AllProvidersFailedError",
    "OracleUnavailableError",
    "RepositoryError",
    "InvalidMetricError",
    "ExecutionError",
    "OpportunityDecodeError",
]
