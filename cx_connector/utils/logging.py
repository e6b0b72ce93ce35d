# /cx_connector/utils/logging.py

import logging
import sys
import structlog
from cx_connector.config.settings import settings

# Structured logging for scripts and embedding applications. Modules keep
# using the standard `logging.getLogger(__name__)`; structlog renders them.

def setup_logging(level: str | None = None):
    """
    Configures structlog on top of the standard logging module so that
    both structlog loggers and plain `logging` loggers share one output.
    """
    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.environment == "development":
        final_processor = structlog.dev.ConsoleRenderer()
    else:
        final_processor = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=final_processor,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel((level or settings.log_level).upper())

    # Request lines of the HTTP client are noise next to the crawl log
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


class StatusReporter:
    """
    Sends progress lines to a module logger and, when given, to the
    caller's status callback (the test framework shows them to the user).
    """

    def __init__(self, logger: logging.Logger, callback=None):
        self.logger = logger
        self.callback = callback

    def __call__(self, message: str, details: dict | None = None, level: int = logging.INFO):
        if details:
            self.logger.log(level, f"{message} {details}")
        else:
            self.logger.log(level, message)
        if self.callback:
            self.callback(message, details)
