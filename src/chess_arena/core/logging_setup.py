"""Logging configuration for the chess_arena logger tree."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a single stream handler to the package logger (idempotent)."""
    logger = logging.getLogger("chess_arena")
    logger.setLevel(level.upper())
    if not any(getattr(h, "_chess_arena", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._chess_arena = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
