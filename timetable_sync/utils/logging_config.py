"""
Centralized logging configuration for the timetable sync system.

This module provides standardized logging with timestamps, function names,
and appropriate log levels for all system components.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional


class ScheduleSystemLogger:
    """
    Centralized logger for the timetable sync system.
    Provides consistent formatting and handling across all modules.
    """

    _loggers = {}
    _configured = False

    @classmethod
    def setup_logging(
        cls,
        log_level: Optional[str] = None,
        log_file: Optional[str] = None,
        console_output: bool = True,
        force: bool = False
    ) -> None:
        """
        Configure the logging system for the entire application.

        Args:
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
                Falls back to LOG_LEVEL, then INFO
            log_file: Optional log file path. Falls back to LOG_FILE; no file
                handler is installed when neither is set
            console_output: Whether to output logs to console
            force: Reconfigure even if logging was already set up (e.g. after
                loading a dotenv file)
        """
        if cls._configured and not force:
            return

        log_level = (log_level or os.getenv("LOG_LEVEL") or "INFO").upper()
        log_file = log_file or os.getenv("LOG_FILE")

        # Only configure the package logger so host applications keep their root setup
        package_logger = logging.getLogger("timetable_sync")
        package_logger.setLevel(getattr(logging, log_level))
        package_logger.handlers.clear()

        # Create formatter with function names and timestamps
        formatter = logging.Formatter(
            fmt='%(asctime)s | %(levelname)-8s | %(name)-32s | %(funcName)-24s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        if console_output:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            console_handler.setLevel(getattr(logging, log_level))
            package_logger.addHandler(console_handler)

        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            # File handler with rotation
            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_file,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5
            )
            file_handler.setFormatter(formatter)
            file_handler.setLevel(logging.DEBUG)  # File gets all levels
            package_logger.addHandler(file_handler)

        cls._configured = True

        logger = cls.get_logger("logging_config")
        logger.info(f"Logging system configured - Level: {log_level}, File: {log_file}")

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Get a logger for a specific module or component.

        Args:
            name: Logger name (typically component name)

        Returns:
            Configured logger instance
        """
        if name not in cls._loggers:
            if not cls._configured:
                cls.setup_logging()

            logger = logging.getLogger(f"timetable_sync.{name}")
            cls._loggers[name] = logger

        return cls._loggers[name]


def get_sync_logger() -> logging.Logger:
    """Get logger specifically for the sync engine."""
    return ScheduleSystemLogger.get_logger("sync_engine")


def get_store_logger() -> logging.Logger:
    """Get logger specifically for remote store adapters."""
    return ScheduleSystemLogger.get_logger("remote_store")


def get_cache_logger() -> logging.Logger:
    """Get logger specifically for the local cache."""
    return ScheduleSystemLogger.get_logger("local_cache")


def get_api_logger() -> logging.Logger:
    """Get logger for the schedules API."""
    return ScheduleSystemLogger.get_logger("schedules_api")


def get_main_logger() -> logging.Logger:
    """Get logger for main application."""
    return ScheduleSystemLogger.get_logger("main_app")


def log_store_operation(
    logger: logging.Logger,
    operation: str,
    store: str,
    success: bool,
    details: Optional[str] = None,
    error: Optional[Exception] = None
) -> None:
    """
    Standardized logging for store operations.

    Args:
        logger: Logger instance to use
        operation: Store operation (FETCH, SAVE, LOAD, PUT)
        store: Store name (http, firestore, kv, local_cache)
        success: Whether operation was successful
        details: Additional details
        error: Exception if operation failed
    """
    message_parts = [f"STORE_{operation.upper()}", f"Store: {store}"]

    if details:
        message_parts.append(f"Details: {details}")

    message = " | ".join(message_parts)

    if success:
        logger.info(message)
    elif error:
        logger.error(f"{message} | Error: {error}")
    else:
        logger.error(message)


def log_sync_operation(
    logger: logging.Logger,
    operation: str,
    teacher: Optional[str] = None,
    details: Optional[str] = None
) -> None:
    """
    Standardized logging for sync engine operations.

    Args:
        logger: Logger instance to use
        operation: Type of operation (select, edit, save, reconcile, etc.)
        teacher: Optional teacher id the operation applies to
        details: Additional details
    """
    message_parts = [f"SYNC_{operation.upper()}"]

    if teacher:
        message_parts.append(f"Teacher: {teacher}")

    if details:
        message_parts.append(f"Details: {details}")

    logger.info(" | ".join(message_parts))
