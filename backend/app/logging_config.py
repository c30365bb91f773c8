"""Logging setup for the TaskLynk API service."""

import logging

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once at startup."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # Library loggers follow the service level
    logging.getLogger("tasklynk").setLevel(level.upper())


def get_logger(name: str) -> logging.Logger:
    """Get a named logger for a service module."""
    return logging.getLogger(name)
