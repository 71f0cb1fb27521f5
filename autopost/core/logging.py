"""
Logging Configuration - Structured logging with job context
"""
import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional
from contextvars import ContextVar

# Context variables for job tracking
current_job_id: ContextVar[Optional[str]] = ContextVar('current_job_id', default=None)
current_account_id: ContextVar[Optional[str]] = ContextVar('current_account_id', default=None)


class StructuredFormatter(logging.Formatter):
    """
    JSON-structured log formatter with job context.
    """
    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        job_id = current_job_id.get()
        account_id = current_account_id.get()

        if job_id:
            log_data["job_id"] = job_id
        if account_id:
            log_data["account_id"] = account_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Copies the job context onto plain-text records as a [job=...] tag."""

    def filter(self, record: logging.LogRecord) -> bool:
        job_id = current_job_id.get()
        record.job_tag = f" [job={job_id}]" if job_id else ""
        return True


def setup_logging(level: str = "INFO", structured: bool = True):
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        structured: Use JSON format (True) or human-readable (False)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.addFilter(ContextFilter())
        handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)s%(job_tag)s | %(message)s'
        ))

    root_logger.addHandler(handler)


class JobContext:
    """
    Context manager for setting job context in logs.

    Usage:
        with JobContext(job_id="abc123", account_id="acc"):
            logger.info("Posting...")  # Will include job_id and account_id
    """
    def __init__(self, job_id: Optional[str] = None, account_id: Optional[str] = None):
        self.job_id = job_id
        self.account_id = account_id
        self._tokens = []

    def __enter__(self):
        if self.job_id:
            self._tokens.append((current_job_id, current_job_id.set(self.job_id)))
        if self.account_id:
            self._tokens.append((current_account_id, current_account_id.set(self.account_id)))
        return self

    def __exit__(self, *args):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
