"""
Structured logging for utm-codex using structlog.
"""

import logging
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import structlog

LOG_TAG = "[utm-codex]"

# Third-party loggers that are too chatty at INFO.
NOISY_LOGGERS = ("urllib3", "requests")


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[Path] = None,
) -> None:
    """
    Configure structured logging for the provisioning run.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Render console records as JSON instead of key/value text
        log_file: Optional file that additionally receives JSON records
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%H:%M:%S"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stderr.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=shared_processors,
        )
    )
    handlers = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(Path(log_file).expanduser())
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.JSONRenderer(),
                foreign_pre_chain=shared_processors,
            )
        )
        handlers.append(file_handler)

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        handlers=handlers,
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def log_operation(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    failure_level: str = "error",
    **kwargs,
) -> Iterator[structlog.stdlib.BoundLogger]:
    """
    Log the start and end of a pipeline stage.

    Usage:
        with log_operation(log, "clone_vm", vm_name="CodexWin") as op_log:
            op_log.info("cloning")

    Failures are logged at *failure_level* and re-raised.
    """
    log = logger.bind(operation=operation, **kwargs)
    started = time.monotonic()
    log.info(f"{operation}.started")

    try:
        yield log
    except Exception as e:
        getattr(log, failure_level)(
            f"{operation}.failed",
            error=str(e),
            error_type=type(e).__name__,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )
        raise
    log.info(
        f"{operation}.completed",
        duration_ms=round((time.monotonic() - started) * 1000, 2),
    )
