"""Logging setup for dupreaper."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_HANDLER_NAME = "dupreaper"


def configure_logging(
    level: int | str = logging.INFO,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """
    Attach a single handler to the package logger.

    Safe to call more than once: the level is updated and the previously
    installed handler is replaced rather than duplicated.

    Args:
        level: Logging level (name or number).
        handler: Handler to install. Defaults to a stderr StreamHandler.
    """
    if isinstance(level, str):
        level = level.upper()
    logger = logging.getLogger("dupreaper")
    logger.setLevel(level)

    for existing in list(logger.handlers):
        if existing.get_name() == _HANDLER_NAME:
            logger.removeHandler(existing)

    if handler is None:
        handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return logger
