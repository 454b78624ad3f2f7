"""
Logging setup for the application.

``setup_logging`` attaches a console handler to the root logger exactly
once, so repeated ``create_app`` calls (for instance from tests) do not
duplicate output.
"""

import logging


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger at ``level`` (case insensitive).

    Unknown level names fall back to ``INFO``.
    """
    logger = logging.getLogger()
    if logger.handlers:
        return

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    logger.addHandler(handler)
