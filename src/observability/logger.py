"""
Structured logging for royalty-ingest

Every module logs through a child of the ``royalty-ingest`` logger, so one
handler formats all pipeline output: JSON lines via python-json-logger by
default, plain text with LOG_FORMAT=text. Lines emitted inside
``job_context`` carry the id of the job being processed.
"""
import logging
import os
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar

from pythonjsonlogger import jsonlogger

SERVICE_LOGGER = "royalty-ingest"

JSON_FORMAT = "%(timestamp)s %(level)s %(logger)s %(module)s %(function)s %(message)s"
TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(job_id)s] %(message)s"

_current_job_id: ContextVar[str | None] = ContextVar("current_job_id", default=None)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter adding timestamp, level, source location and job id
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["process_id"] = record.process

        job_id = _current_job_id.get()
        if job_id and not log_record.get("job_id"):
            log_record["job_id"] = job_id


class JobIdFilter(logging.Filter):
    """Expose the current job id as ``%(job_id)s`` for the text format."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "job_id"):
            record.job_id = _current_job_id.get() or "-"
        return True


def setup_logger(
    name: str = SERVICE_LOGGER,
    level: str | None = None,
    format_type: str | None = None,
) -> logging.Logger:
    """
    Configure a logger with a single stdout handler

    Args:
        name: Logger name
        level: Log level name (defaults to LOG_LEVEL, then INFO)
        format_type: "json" or "text" (defaults to LOG_FORMAT, then json)

    Returns:
        Configured logger instance
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO
    format_type = (format_type or os.getenv("LOG_FORMAT", "json")).lower()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(JobIdFilter())
    if format_type == "text":
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    else:
        handler.setFormatter(CustomJsonFormatter(fmt=JSON_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))

    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    logger.handlers = [handler]
    logger.propagate = False
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Logger for a module, nested under the service logger

    The service logger is configured on first use; module loggers have no
    handlers of their own and propagate to it.
    """
    service = logging.getLogger(SERVICE_LOGGER)
    if not service.handlers:
        setup_logger(SERVICE_LOGGER)

    if not name or name == SERVICE_LOGGER:
        return service
    return service.getChild(name)


@contextmanager
def job_context(job_id: str):
    """Tag every log line emitted inside the block with ``job_id``."""
    token = _current_job_id.set(job_id)
    try:
        yield
    finally:
        _current_job_id.reset(token)


class log_operation:
    """
    Log the start, outcome and duration of a named operation

    Exceptions are logged with their type and message, then propagate.

    Usage:
        with log_operation("Processing job", logger=logger, job_id=job.id) as op:
            await pipeline.process_file(job, progress)
        op.elapsed
    """

    def __init__(self, operation_name: str, logger: logging.Logger | None = None, **extra_fields):
        self.operation_name = operation_name
        self.logger = logger or get_logger()
        self.extra_fields = extra_fields
        self.start_time: float | None = None

    @property
    def elapsed(self) -> float:
        if self.start_time is None:
            return 0.0
        return time.perf_counter() - self.start_time

    def _fields(self, **fields) -> dict:
        return {"operation": self.operation_name, **fields, **self.extra_fields}

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.info(f"Starting: {self.operation_name}", extra=self._fields())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = round(self.elapsed, 3)

        if exc_type is None:
            self.logger.info(
                f"Completed: {self.operation_name}",
                extra=self._fields(duration_seconds=duration, status="success"),
            )
        else:
            self.logger.error(
                f"Failed: {self.operation_name}",
                extra=self._fields(
                    duration_seconds=duration,
                    status="error",
                    error_type=exc_type.__name__,
                    error_message=str(exc_val),
                ),
                exc_info=(exc_type, exc_val, exc_tb),
            )
        return False
