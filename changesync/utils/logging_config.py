"""Structured logging setup for replication runs."""

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from typing import Any, TextIO

import structlog

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    log_file: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """
    Configure structlog on top of the standard library.

    Every event carries the context bound by ``pass_context``, so lines
    logged by stores and the Differ during a pass name the pass they belong
    to. Logs go to stderr by default, leaving stdout to command output such
    as ``replicate --json``.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: If True, output JSON logs. If False, use console format.
        log_file: Optional path of a rotating log file written alongside the stream
        stream: Stream for log output, stderr if None

    Example:
        >>> configure_logging(log_level="DEBUG", json_logs=False)
        >>> with pass_context(source="laptop", target="server", model_name="notes"):
        ...     structlog.stdlib.get_logger().info("replication_started")
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    stream = stream or sys.stderr

    logging.basicConfig(format="%(message)s", level=numeric_level, stream=stream)

    if log_file:
        file_handler = RotatingFileHandler(
            log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
        )
        file_handler.setLevel(numeric_level)
        logging.root.addHandler(file_handler)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ],
        ),
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        # A log file shares the rendered line, so only color a terminal-only setup
        colors = log_file is None and stream.isatty()
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=colors, exception_formatter=structlog.dev.plain_traceback
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def pass_context(source: str, target: str, model_name: str) -> Iterator[str]:
    """
    Bind the identity of one replication pass to every log event inside it.

    Yields:
        The generated pass id
    """
    pass_id = uuid.uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(
        pass_id=pass_id, source=source, target=target, model_name=model_name
    ):
        yield pass_id
