import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler
from structlog.dev import ConsoleRenderer
from structlog.processors import (
    JSONRenderer,
    StackInfoRenderer,
    TimeStamper,
    add_log_level,
    format_exc_info,
)
from structlog.stdlib import BoundLogger, ProcessorFormatter, add_logger_name

from udiskr.shared.path_handler import PathHandler

LOGGER_NAME = "udiskr"
LOG_FILE_NAME = "udiskr.log"


def setup_logging(
    level: int = logging.INFO, log_file: Optional[str] = None
) -> BoundLogger:
    """
    Routes structlog through the stdlib logger: rich console output on
    standard error and, when ``log_file`` is given, rotating JSON lines.
    """
    shared_processors = [
        add_log_level,
        TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
        StackInfoRenderer(),
        format_exc_info,
    ]

    structlog.configure(
        processors=shared_processors
        + [
            add_logger_name,
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    std_logger = logging.getLogger(LOGGER_NAME)
    std_logger.setLevel(level)
    std_logger.propagate = False
    for handler in std_logger.handlers[:]:
        std_logger.removeHandler(handler)
        handler.close()
    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=1024 * 1024,
            backupCount=2,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        json_formatter = ProcessorFormatter(
            foreign_pre_chain=shared_processors + [add_logger_name],
            processor=JSONRenderer(),
        )
        file_handler.setFormatter(json_formatter)
        std_logger.addHandler(file_handler)
    console_handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        markup=False,
        show_path=False,
        show_time=False,
    )
    console_handler.setLevel(level)
    console_formatter_final = ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processor=ConsoleRenderer(colors=False),
        fmt="%(message)s",
    )
    console_handler.setFormatter(console_formatter_final)
    std_logger.addHandler(console_handler)
    return structlog.get_logger(LOGGER_NAME)


def default_log_file() -> str:
    return PathHandler().get_state_path(LOG_FILE_NAME)

