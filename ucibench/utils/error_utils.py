"""
Error taxonomy for ucibench.
Classifies failures by category and severity so the runner can decide what is
isolated to a single position and what is fatal to the whole operation.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for classification."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""
    PROCESS = "process"
    PROTOCOL = "protocol"
    TIMEOUT = "timeout"
    SNAPSHOT = "snapshot"
    DIFF = "diff"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


class UciBenchError(Exception):
    """Base exception class for ucibench errors."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 severity: ErrorSeverity = ErrorSeverity.MEDIUM, context_data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context_data = context_data or {}
        self.timestamp = time.time()

    def __str__(self):
        return f"[{self.category.value}:{self.severity.value}] {self.message}"


class ProcessSpawnError(UciBenchError):
    """Engine binary is absent, not executable, or refused to start."""
    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.PROCESS, ErrorSeverity.CRITICAL, **kwargs)


class EngineCrashed(UciBenchError):
    """Engine process exited or closed its pipes unexpectedly."""
    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.PROCESS, ErrorSeverity.HIGH, **kwargs)


class ProtocolViolation(UciBenchError):
    """A line could not be parsed into any known event shape."""
    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.PROTOCOL, ErrorSeverity.LOW, **kwargs)


class EngineTimeout(UciBenchError):
    """No matching event arrived before the deadline."""
    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.TIMEOUT, ErrorSeverity.MEDIUM, **kwargs)


class SnapshotFormatError(UciBenchError):
    """Snapshot document has an unsupported version or an invalid structure."""
    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.SNAPSHOT, ErrorSeverity.HIGH, **kwargs)


class PositionSetMismatch(UciBenchError):
    """Two snapshots being compared do not cover the same position ids."""
    def __init__(self, message: str, added=(), removed=(), **kwargs):
        super().__init__(message, ErrorCategory.DIFF, ErrorSeverity.LOW, **kwargs)
        self.added = list(added)
        self.removed = list(removed)


class ConfigurationError(UciBenchError):
    """Configuration or suite-file errors."""
    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.CONFIGURATION, ErrorSeverity.HIGH, **kwargs)
