"""Logging setup for the CLI entry points.

Library code only calls structlog.get_logger(); processes that own the
terminal (the CLI, the gateway server) call configure_logging() once.
"""

import logging

import structlog


def configure_logging(level: str = "INFO") -> None:
    """Route stdlib logging and structlog to stderr at the given level."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )
