"""Structured logging configuration."""

import logging
import sys
from pathlib import Path

from pythonjsonlogger import jsonlogger

from pricewise.config import settings
from pricewise.utils.timestamps import utcnow


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that adds timestamp, level and source location fields."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = utcnow().isoformat() + 'Z'
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['service'] = 'pricewise'
        log_record['source'] = f"{record.filename}:{record.lineno}"

        if record.funcName:
            log_record['function'] = record.funcName


def setup_logging(base_dir: str | Path | None = None, json_files: bool = True):
    """Configure logging for the application.

    Args:
        base_dir: Optional base directory to place the logs/ folder in.
                  Falls back to ``settings.log_dir``, then the current
                  working directory.
        json_files: Also write JSON log files (app.log, error.log).
    """
    root_logger = logging.getLogger()
    level = "DEBUG" if settings.debug else settings.log_level.upper()
    root_logger.setLevel(getattr(logging, level))
    root_logger.handlers.clear()

    # Console handler (human-readable for development)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(console_handler)

    if not json_files:
        return root_logger

    base = base_dir or settings.log_dir or Path.cwd()
    logs_dir = Path(base) / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    json_formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )

    json_handler = logging.FileHandler(logs_dir / "app.log")
    json_handler.setLevel(logging.DEBUG)
    json_handler.setFormatter(json_formatter)
    root_logger.addHandler(json_handler)

    error_handler = logging.FileHandler(logs_dir / "error.log")
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(json_formatter)
    root_logger.addHandler(error_handler)

    return root_logger


class ContextLogger(logging.LoggerAdapter):
    """
    Adapter that stamps every record with bound comparison context.

    Context set with ``bind`` (component, item_id, strategy, ...) becomes
    top-level fields in the JSON log files. A call's own ``extra`` wins over
    bound values of the same name.
    """

    def process(self, msg, kwargs):
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs

    def bind(self, **context) -> "ContextLogger":
        return ContextLogger(self.logger, {**self.extra, **context})


def get_logger(name: str, component: str | None = None, **context) -> ContextLogger:
    """
    Get a context logger.

    Args:
        name: Logger name (usually __name__)
        component: Pricewise component emitting the records (e.g. 'comparison_engine')
        **context: Further bound fields (e.g. item_id='item-rice', strategy='totalPrice')
    """
    if component:
        context['component'] = component
    return ContextLogger(logging.getLogger(name), context)
