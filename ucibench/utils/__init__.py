"""Shared utilities: error taxonomy, logging setup, host metadata."""

from .error_utils import (
    ConfigurationError,
    EngineCrashed,
    EngineTimeout,
    ErrorCategory,
    ErrorSeverity,
    PositionSetMismatch,
    ProcessSpawnError,
    ProtocolViolation,
    SnapshotFormatError,
    UciBenchError,
)
from .logging_utils import setup_logging
from .system_info import host_info, log_system_info

__all__ = [
    "ConfigurationError",
    "EngineCrashed",
    "EngineTimeout",
    "ErrorCategory",
    "ErrorSeverity",
    "PositionSetMismatch",
    "ProcessSpawnError",
    "ProtocolViolation",
    "SnapshotFormatError",
    "UciBenchError",
    "setup_logging",
    "host_info",
    "log_system_info",
]
