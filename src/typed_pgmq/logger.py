# src/typed_pgmq/logger.py

import asyncio
import functools
import logging
import logging.handlers
import os
import sys
import time
from datetime import datetime
from typing import Any, Dict, Optional, Union

from loguru import logger as loguru_logger

LEVEL_NAMES = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARNING",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "CRITICAL",
}

STANDARD_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
STANDARD_JSON_FORMAT = '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'
LOGURU_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{extra[logger]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
LOGURU_JSON_FORMAT = '{{"timestamp": "{time:YYYY-MM-DD HH:mm:ss.SSS}", "level": "{level}", "logger": "{extra[logger]}", "message": "{message}"}}'


def _default_log_path(log_filename: Optional[str]) -> str:
    if log_filename is None:
        log_filename = datetime.now().strftime("pgmq_debug_%Y%m%d_%H%M%S.log")
    return os.path.join(os.getcwd(), log_filename)


class PGMQLogger:
    """
    Centralized logger factory for the PGMQ clients.

    Loggers are cached by name. The standard ``logging`` module is used unless
    ``use_loguru`` is requested, in which case a bound ``loguru`` logger is
    returned instead. Both kinds are accepted by :meth:`log_with_context`.
    """

    _loggers: Dict[str, Union[logging.Logger, Any]] = {}
    _loguru_handlers: Dict[str, list] = {}

    @classmethod
    def get_logger(
        cls,
        name: str,
        verbose: bool = False,
        log_filename: Optional[str] = None,
        log_format: Optional[str] = None,
        log_level: Optional[Union[int, str]] = None,
        enable_rotation: bool = False,
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        structured: bool = False,
        use_loguru: bool = False,
        rotation: Optional[str] = None,
        retention: Optional[str] = None,
        compression: Optional[str] = None,
    ) -> Union[logging.Logger, Any]:
        """
        Get or create a logger with the specified configuration.

        Args:
            name: Logger name
            verbose: Enable debug logging and a debug log file
            log_filename: Log file path (auto-generated if None and verbose is True)
            log_format: Custom log format string
            log_level: Override log level
            enable_rotation: Rotate the log file (standard logging only)
            max_bytes: Maximum bytes before rotation (standard logging only)
            backup_count: Number of backup files to keep (standard logging only)
            structured: Emit JSON-shaped log lines
            use_loguru: Build a loguru logger instead of a standard one
            rotation: Log rotation setting (loguru only, e.g., "10 MB", "1 day")
            retention: Log retention setting (loguru only, e.g., "1 week")
            compression: Compression setting (loguru only, e.g., "gz")

        Returns:
            Configured logger instance (either logging.Logger or loguru logger)
        """
        key = f"{name}:loguru" if use_loguru else name
        if key in cls._loggers:
            return cls._loggers[key]

        if use_loguru:
            logger = cls._get_loguru_logger(
                name=name,
                verbose=verbose,
                log_filename=log_filename,
                log_format=log_format,
                log_level=log_level,
                structured=structured,
                rotation=rotation,
                retention=retention,
                compression=compression,
            )
        else:
            logger = cls._get_standard_logger(
                name=name,
                verbose=verbose,
                log_filename=log_filename,
                log_format=log_format,
                log_level=log_level,
                enable_rotation=enable_rotation,
                max_bytes=max_bytes,
                backup_count=backup_count,
                structured=structured,
            )

        cls._loggers[key] = logger
        return logger

    @classmethod
    def _get_standard_logger(
        cls,
        name: str,
        verbose: bool = False,
        log_filename: Optional[str] = None,
        log_format: Optional[str] = None,
        log_level: Optional[Union[int, str]] = None,
        enable_rotation: bool = False,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
        structured: bool = False,
    ) -> logging.Logger:
        logger = logging.getLogger(name)

        if log_level is not None:
            logger.setLevel(log_level)
        elif verbose:
            logger.setLevel(logging.DEBUG)
        else:
            logger.setLevel(logging.WARNING)

        # Skip handler setup if the application already configured this logger
        if logger.handlers:
            return logger

        if log_format is None:
            log_format = STANDARD_JSON_FORMAT if structured else STANDARD_FORMAT
        formatter = logging.Formatter(log_format)

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        if verbose or log_filename:
            log_path = _default_log_path(log_filename)
            if enable_rotation:
                file_handler = logging.handlers.RotatingFileHandler(
                    filename=log_path, maxBytes=max_bytes, backupCount=backup_count
                )
            else:
                file_handler = logging.FileHandler(filename=log_path)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

        return logger

    @classmethod
    def _get_loguru_logger(
        cls,
        name: str,
        verbose: bool = False,
        log_filename: Optional[str] = None,
        log_format: Optional[str] = None,
        log_level: Optional[Union[int, str]] = None,
        structured: bool = False,
        rotation: Optional[str] = None,
        retention: Optional[str] = None,
        compression: Optional[str] = None,
    ) -> Any:
        if log_level is None:
            log_level = "DEBUG" if verbose else "WARNING"
        elif isinstance(log_level, int):
            log_level = LEVEL_NAMES.get(log_level, "INFO")

        if log_format is None:
            log_format = LOGURU_JSON_FORMAT if structured else LOGURU_FORMAT

        # Only records bound to this logger name reach these sinks
        def only_this_logger(record):
            return record["extra"].get("logger") == name

        handler_ids = [
            loguru_logger.add(
                sys.stderr,
                format=log_format,
                level=log_level,
                filter=only_this_logger,
                enqueue=True,
                backtrace=True,
                diagnose=True,
            )
        ]

        if verbose or log_filename:
            handler_ids.append(
                loguru_logger.add(
                    _default_log_path(log_filename),
                    format=log_format,
                    level=log_level,
                    filter=only_this_logger,
                    rotation=rotation or "10 MB",
                    retention=retention or "1 week",
                    compression=compression,
                    enqueue=True,
                    backtrace=True,
                    diagnose=True,
                )
            )

        cls._loguru_handlers[name] = handler_ids
        return loguru_logger.bind(logger=name)

    @classmethod
    def reset(cls) -> None:
        """Forget cached loggers and detach any loguru sinks added here."""
        for handler_ids in cls._loguru_handlers.values():
            for handler_id in handler_ids:
                loguru_logger.remove(handler_id)
        cls._loguru_handlers.clear()
        cls._loggers.clear()

    @classmethod
    def log_with_context(
        cls,
        logger: Union[logging.Logger, Any],
        level: Union[int, str],
        message: str,
        **context,
    ) -> None:
        """
        Log a message with additional context.

        Standard loggers get the context appended as ``key=value`` pairs;
        loguru loggers get it bound as extra fields.
        """
        if isinstance(logger, logging.Logger):
            if isinstance(level, str):
                level = logging.getLevelName(level)
            if context:
                context_str = " | ".join([f"{k}={v}" for k, v in context.items()])
                message = f"{message} | {context_str}"
            logger.log(level, message)
            return

        if context:
            logger = logger.bind(**context)
        if isinstance(level, int):
            level = LEVEL_NAMES.get(level, "INFO")
        logger.log(level, message)

    @classmethod
    def log_transaction_start(
        cls, logger: Union[logging.Logger, Any], func_name: str, **context
    ):
        cls.log_with_context(
            logger,
            logging.DEBUG,
            f"Transaction started: {func_name}",
            event="transaction_start",
            **context,
        )

    @classmethod
    def log_transaction_success(
        cls, logger: Union[logging.Logger, Any], func_name: str, **context
    ):
        cls.log_with_context(
            logger,
            logging.DEBUG,
            f"Transaction completed: {func_name}",
            event="transaction_success",
            **context,
        )

    @classmethod
    def log_transaction_error(
        cls,
        logger: Union[logging.Logger, Any],
        func_name: str,
        error: BaseException,
        **context,
    ):
        cls.log_with_context(
            logger,
            logging.ERROR,
            f"Transaction failed: {func_name} - {error}",
            event="transaction_error",
            error_type=type(error).__name__,
            **context,
        )


log_with_context = PGMQLogger.log_with_context


def create_logger(
    name: str, verbose: bool = False, log_filename: Optional[str] = None
) -> Union[logging.Logger, Any]:
    """Create a standard logger with the short-form interface."""
    return PGMQLogger.get_logger(name=name, verbose=verbose, log_filename=log_filename)


def log_performance(logger: Union[logging.Logger, Any]):
    """Decorator to log how long a sync or async callable takes."""

    def decorator(func):
        def _done(start_time: float, error: Optional[Exception] = None) -> None:
            elapsed = round((time.perf_counter() - start_time) * 1000, 2)
            if error is None:
                log_with_context(
                    logger,
                    logging.DEBUG,
                    f"Completed {func.__name__}",
                    function=func.__name__,
                    elapsed_ms=elapsed,
                    success=True,
                )
            else:
                log_with_context(
                    logger,
                    logging.ERROR,
                    f"Failed {func.__name__}: {error}",
                    function=func.__name__,
                    elapsed_ms=elapsed,
                    success=False,
                )

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _done(start_time, e)
                raise
            _done(start_time)
            return result

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _done(start_time, e)
                raise
            _done(start_time)
            return result

        return async_wrapper if asyncio.iscoroutinefunction(func) else wrapper

    return decorator
