'''
Application-wide logger. Every module imports `log` from here.
'''
import logging
import sys

from .config import settings

# Chatty third-party loggers, capped at WARNING so request logs stay readable
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite")


def setup_logger(name: str = 'tutorate-backend') -> logging.Logger:
    """
    Configures the `tutorate-backend` logger: one stdout handler, level from
    LOG_LEVEL. Safe to call more than once.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(module)s - %(levelname)s\n - %(message)s'
        ))
        logger.addHandler(handler)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(logging.WARNING, logger.level))

    return logger


log = setup_logger()
