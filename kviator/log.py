"""
Logging setup for kviator.

Log lines always go to stderr so that stdout carries nothing but command
output (values, keys, "true"). The default level is WARNING, which keeps a
normal invocation silent; --verbose and --debug lower it.

Usage:
    from kviator.log import get_logger, setup_logging

    setup_logging("INFO")
    logger = get_logger(__name__)
    logger.info("connected", backend="etcd", endpoint="localhost:2379")
"""

import logging
import sys
from typing import Any, Optional

import structlog

DEFAULT_LEVEL = "WARNING"

_handler: Optional[logging.Handler] = None


def setup_logging(level: str = DEFAULT_LEVEL) -> None:
    global _handler
    log_level = getattr(logging, level.upper())

    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(colors=False),
        foreign_pre_chain=shared_processors,
    )

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)

    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(formatter)
    root.addHandler(_handler)
    root.setLevel(log_level)

    # driver libraries are chatty at INFO (kazoo connection state, grpc)
    driver_level = log_level if log_level == logging.DEBUG else max(log_level, logging.WARNING)
    for name in ("kazoo", "urllib3", "grpc"):
        logging.getLogger(name).setLevel(driver_level)


def get_logger(name: str) -> Any:
    return structlog.get_logger(name)
