"""Logging module for the gateway."""

from .recorder import (
    RequestLogRecorder,
    is_disk_logging_enabled,
    log_error_event,
    set_disk_logging_enabled,
    wait_for_pending_logs,
)
from .setup import LOGGER_NAME, logger, setup_logging

__all__ = [
    "LOGGER_NAME",
    "logger",
    "setup_logging",
    "RequestLogRecorder",
    "is_disk_logging_enabled",
    "log_error_event",
    "set_disk_logging_enabled",
    "wait_for_pending_logs",
]
