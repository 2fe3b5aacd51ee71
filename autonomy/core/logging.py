"""
Logging setup for autonomy.

Modules log through ``logging.getLogger(__name__)``; applications call
``setup_logging`` once to install a handler on the ``autonomy`` logger.
"""

import logging
from typing import Optional, Union

from rich.logging import RichHandler

LOGGER_NAME = "autonomy"
_PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(
    level: Union[int, str] = "INFO",
    use_rich: bool = True,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        level: Log level name or number
        use_rich: Render console output with rich
        log_file: Optional file that receives plain-text records too

    Returns:
        The configured ``autonomy`` logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    # Replace handlers installed by an earlier call
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if use_rich:
        console_handler: logging.Handler = RichHandler(
            rich_tracebacks=True,
            show_path=False,
            markup=False,
        )
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(_PLAIN_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_PLAIN_FORMAT))
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
