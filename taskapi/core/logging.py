import logging
import os
from collections import OrderedDict
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import structlog

from taskapi.core.utils import ifnone

DEFAULT_LOG_DIR = "~/.cache/taskapi/logs"

_KEY_ORDER = [
    "timestamp",
    "event",
    "service",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "level",
    "logger",
]


def default_formatter(fmt: Optional[str] = None) -> logging.Formatter:
    """Returns a logging formatter with a default format if none is specified."""
    return logging.Formatter(fmt or "[%(asctime)s] %(levelname)s: %(name)s: %(message)s")


def _enforce_key_order_processor(key_order: list[str]):
    def _processor(_logger, _method_name, event_dict):
        ordered = OrderedDict()
        for key in key_order:
            if key in event_dict:
                ordered[key] = event_dict.pop(key)
        for key in sorted(event_dict.keys()):
            ordered[key] = event_dict[key]
        return ordered

    return _processor


def setup_logger(
    name: str = "taskapi",
    *,
    log_dir: Optional[str | Path] = None,
    logger_level: int = logging.DEBUG,
    stream_level: int = logging.INFO,
    add_stream_handler: bool = True,
    file_level: int = logging.DEBUG,
    add_file_handler: bool = True,
    propagate: bool = False,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    use_structlog: bool = True,
    structlog_json: bool = True,
) -> logging.Logger | structlog.stdlib.BoundLogger:
    """Configure a named logger with a stream handler and a rotating file handler.

    The log file lives at ``{log_dir}/{name}.log`` (``~/.cache/taskapi/logs`` by default,
    overridable with the ``TASKAPI_LOG_DIR`` environment variable).

    Args:
        name: Logger name.
        log_dir: Directory for the log file.
        logger_level: Overall logger level.
        stream_level: Level for the stream handler.
        add_stream_handler: Whether to attach a stream handler.
        file_level: Level for the file handler.
        add_file_handler: Whether to attach a rotating file handler.
        propagate: Whether records propagate to ancestor loggers.
        max_bytes: Maximum log file size before rotation.
        backup_count: Number of rotated files to keep.
        use_structlog: Return a structlog ``BoundLogger`` instead of a plain stdlib logger.
        structlog_json: Render JSON when True, otherwise use the console renderer.

    Returns:
        The configured logger.
    """
    stdlib_logger = logging.getLogger(name)
    stdlib_logger.handlers.clear()
    stdlib_logger.setLevel(logger_level)
    stdlib_logger.propagate = propagate

    # structlog renders the full line itself
    formatter = logging.Formatter("%(message)s") if use_structlog else default_formatter()

    if add_stream_handler:
        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(stream_level)
        stream_handler.setFormatter(formatter)
        stdlib_logger.addHandler(stream_handler)

    if add_file_handler:
        log_dir = Path(os.path.expanduser(str(ifnone(log_dir, os.getenv("TASKAPI_LOG_DIR", DEFAULT_LOG_DIR)))))
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=str(log_dir / f"{name}.log"), maxBytes=max_bytes, backupCount=backup_count
        )
        file_handler.setLevel(file_level)
        file_handler.setFormatter(formatter)
        stdlib_logger.addHandler(file_handler)

    if not use_structlog:
        return stdlib_logger

    renderer = structlog.processors.JSONRenderer() if structlog_json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _enforce_key_order_processor(_KEY_ORDER),
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger(name)


def get_logger(name: str | None = "taskapi", **kwargs) -> logging.Logger | structlog.stdlib.BoundLogger:
    """Create or retrieve a logger namespaced under ``taskapi``.

    Child loggers propagate to the ``taskapi`` root logger by default and carry no
    handlers of their own, so one stream and one file handler serve the whole app.

    Example:
        .. code-block:: python

            from taskapi.core.logging import get_logger

            logger = get_logger("repositories.task_repository")
            logger.info("Task created", task_id="65f0c0ffee")
    """
    name = name or "taskapi"
    full_name = name if name.startswith("taskapi") else f"taskapi.{name}"
    use_structlog = kwargs.pop("use_structlog", True)

    if full_name == "taskapi":
        return setup_logger(full_name, use_structlog=use_structlog, **kwargs)

    stdlib_logger = logging.getLogger(full_name)
    stdlib_logger.propagate = kwargs.get("propagate", True)
    if not use_structlog:
        return stdlib_logger
    return structlog.get_logger(full_name)
