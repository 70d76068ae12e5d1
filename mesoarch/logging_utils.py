"""
Project-wide logging setup.

Library modules only call logging.getLogger(__name__) and never attach
handlers. A pipeline script calls get_logger() once at import time, which
puts the stdout handler on its own logger and on the "mesoarch" package
logger, so row counts and model metrics logged inside the package show up
in the script's output with the same format.

Usage in any script:

    from mesoarch.logging_utils import get_logger
    logger = get_logger(__name__)
    logger.info("Kept %d of %d sites", kept, total)
"""

import logging
import sys

PACKAGE_LOGGER = "mesoarch"

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATEFMT = "%H:%M:%S"


def _attach_stdout_handler(logger: logging.Logger, level: int) -> None:
    if logger.handlers:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
    logger.addHandler(handler)
    logger.setLevel(level)


def _in_package(name: str) -> bool:
    return name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + ".")


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """
    Return a named logger that writes to stdout, and route package logs there too.

    Names inside the package rely on the package logger's handler instead of
    getting their own, so nothing is printed twice. Calling it again with the
    same name does not attach a second handler.
    """
    _attach_stdout_handler(logging.getLogger(PACKAGE_LOGGER), level)
    logger = logging.getLogger(name)
    if not _in_package(name):
        _attach_stdout_handler(logger, level)
    return logger
