"""
Structured logging configuration for the exec controller.

Every log line is a structured event: the controller logs Pod names,
namespaces, usernames and durations as fields rather than formatted text so
that evictions and extensions can be audited from the log stream.
"""

import logging
import logging.config
import sys
from pathlib import Path
from typing import Any, Dict, Optional, cast

import structlog
from structlog.types import FilteringBoundLogger

_NOISY_LOGGERS = ("uvicorn.access", "kubernetes", "urllib3", "httpx")


class CommandRedactor:
    """
    Structlog processor that truncates interactive command lines.

    Commands typed into ``kubectl exec`` may carry credentials passed as
    arguments; only the first ``max_tokens`` tokens are kept in the log.
    """

    FIELDS = ("command_list",)

    def __init__(self, max_tokens: int = 3):
        self.max_tokens = max_tokens

    def __call__(
        self, logger: FilteringBoundLogger, method_name: str, event_dict: Dict[str, Any]
    ) -> Dict[str, Any]:
        for field in self.FIELDS:
            value = event_dict.get(field)
            if isinstance(value, str):
                tokens = value.split(",")
                if len(tokens) > self.max_tokens:
                    event_dict[field] = ",".join(tokens[: self.max_tokens] + ["..."])
        return event_dict


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    redact_commands: bool = False,
) -> None:
    """
    Set up structured logging for the controller process.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format (json, console)
        log_file: Optional log file path
        redact_commands: Whether to truncate logged interactive commands
    """
    level = getattr(logging, log_level.upper())

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
    ]

    if redact_commands:
        processors.append(CommandRedactor())

    if log_format == "json":
        processors.extend(
            [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
        )
    else:
        processors.extend([structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())])

    structlog.configure(
        processors=processors,  # type: ignore[arg-type]
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    handlers.append(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, format="%(message)s", force=True)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> FilteringBoundLogger:
    """
    Get a structured logger.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return cast(FilteringBoundLogger, structlog.get_logger(name))
