import logging
import os
import sys

ROOT_LOGGER = "photodesk"
LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(level: int | str | None) -> int:
    """
    Accepts a logging level as int or name ('debug', 'WARNING').
    None falls back to PHOTODESK_LOG_LEVEL, then INFO.
    """
    if level is None:
        level = os.getenv("PHOTODESK_LOG_LEVEL", "").strip() or logging.INFO
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def setup_logging(level: int | str | None = None) -> logging.Logger:
    """
    Attaches a single stdout handler to the photodesk logger.
    Calling it again only updates the level.
    """
    level = resolve_level(level)
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    if not name:
        return logging.getLogger(ROOT_LOGGER)
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
