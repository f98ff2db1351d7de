"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Process-level exceptions shared by every package.

Feed-specific failures (rate limits, bad provider payloads,
persistence failures) live in data_ingestion.types; database
failures are wrapped by storage.repositories.exceptions.

============================================================
EXCEPTION HIERARCHY
============================================================
PipelineException (base)
└── ConfigurationError
    └── InvalidConfigError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class Severity(Enum):
    """Exception severity levels for alerting."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ============================================================
# BASE EXCEPTION
# ============================================================

class PipelineException(Exception):
    """
    Base exception for pipeline process errors.

    All exceptions carry:
    - severity: for alerting
    - context: for debugging
    - recoverable: whether the next tick may succeed
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_recoverable: bool = True

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.recoverable = recoverable if recoverable is not None else self.default_recoverable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(PipelineException):
    """Error in configuration."""

    default_severity = Severity.HIGH
    default_recoverable = False

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid configuration for {key}: {reason}",
            config_key=key,
            actual_value=value,
            context={"reason": reason},
        )
