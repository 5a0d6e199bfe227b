"""Logging setup for applications embedding cdpcontext."""

import logging

from cdpcontext.config import CONFIG

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Third-party loggers that are chatty at debug level
_NOISY_LOGGERS = ('cdp_use', 'websockets', 'httpx', 'bubus')


def setup_logging(level: str | int | None = None) -> logging.Logger:
    """Configure the root logger and quiet the protocol stack.

    Args:
        level: Level name or number for the cdpcontext loggers. Defaults to
            CDPCONTEXT_LOGGING_LEVEL.

    Returns:
        The top-level cdpcontext logger.
    """
    if level is None:
        level = CONFIG.LOGGING_LEVEL
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT)

    cdp_level = logging.getLevelName(CONFIG.CDP_LOGGING_LEVEL)
    if not isinstance(cdp_level, int):
        cdp_level = logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(cdp_level)

    package_logger = logging.getLogger('cdpcontext')
    package_logger.setLevel(level)
    return package_logger
