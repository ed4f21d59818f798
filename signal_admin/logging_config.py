"""Structured logging configuration."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from pythonjsonlogger import jsonlogger

from signal_admin.config import settings
from signal_admin.errors import SignalAdminError

SERVICE_NAME = "signal-admin"


def error_fields(exc: BaseException) -> dict:
    """Fields describing a failed operation, taken from a domain error."""
    if not isinstance(exc, SignalAdminError):
        return {"error": type(exc).__name__}
    fields = exc.to_dict()
    fields.pop("message", None)
    return fields


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter for the service's log files.

    Context attached through ``get_logger`` (signal_id, operation, ...) is
    written as top-level keys. When the record carries a SignalAdminError,
    its kind, operation, target_id and retryable flag are lifted alongside.
    """

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['service'] = SERVICE_NAME
        log_record['source'] = f"{record.filename}:{record.lineno}"

        context = log_record.pop('context', None) or {}
        for key, value in context.items():
            log_record.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            for key, value in error_fields(record.exc_info[1]).items():
                # Explicit context wins over what the error carried
                if value is not None:
                    log_record.setdefault(key, value)


class ContextFormatter(logging.Formatter):
    """Console formatter that appends adapter context as key=value pairs."""

    def format(self, record):
        line = super().format(record)
        context = getattr(record, 'context', None)
        if context:
            pairs = " ".join(f"{key}={value}" for key, value in context.items())
            line = f"{line} [{pairs}]"
        return line


def setup_logging(base_dir: str | Path | None = None):
    """Configure logging for the application.

    Args:
        base_dir: Optional base directory to place the logs/ folder in.
                  If omitted, uses the current working directory.
    """
    logs_dir = (Path(base_dir) if base_dir else Path.cwd()) / "logs"
    logs_dir.mkdir(exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper()))
    root_logger.handlers.clear()

    # Console handler (human-readable for development)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(
        ContextFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(console_handler)

    # app.log gets everything, error.log only failures; both one JSON object per line
    json_formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    for filename, level in (("app.log", logging.DEBUG), ("error.log", logging.ERROR)):
        handler = logging.FileHandler(logs_dir / filename)
        handler.setLevel(level)
        handler.setFormatter(json_formatter)
        root_logger.addHandler(handler)

    # SQL statements only when debugging
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.debug else logging.WARNING
    )

    return root_logger


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that attaches its context to every record as ``record.context``."""

    def process(self, msg, kwargs):
        extra = kwargs.get('extra', {})
        context = dict(self.extra)
        context.update(extra.pop('context', {}))
        extra['context'] = context
        kwargs['extra'] = extra
        return msg, kwargs


def get_logger(name: str, **context) -> LoggerAdapter:
    """
    Get a logger with optional context fields.

    Args:
        name: Logger name (usually __name__)
        **context: Context fields (e.g., signal_id='ab12', operation='update_signal')

    Returns:
        LoggerAdapter with context
    """
    logger = logging.getLogger(name)
    return LoggerAdapter(logger, context)
