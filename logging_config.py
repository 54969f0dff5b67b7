"""
Logging Configuration
Console output for the polaroid-print CLI and the streamlit page.
"""
import logging
import sys
from typing import Union

LOGGER_NAME = "polaroid"
LOG_FORMAT = '%(asctime)s %(levelname)-7s %(name)s: %(message)s'


def setup_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """
    Route the 'polaroid.*' loggers (cli, layout, backend) to stdout.

    Streamlit re-executes the page on every interaction, so the handler is
    replaced rather than added again.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S'))
    logger.addHandler(handler)

    logger.debug("Logging at %s", logging.getLevelName(logger.level))
    return logger
