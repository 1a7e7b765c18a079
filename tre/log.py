"""Package logging.

Modules log through children of the package root logger:

    from tre.log import logger
    logger = logger.getChild(__name__)

Children are named by module path, so ``tre.catalog.app.manager`` logs
as ``tre.catalog.app.manager``.
"""

import logging
import sys
from typing import Optional

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class PackageLogger(logging.Logger):
    """Root logger whose getChild accepts full module names."""

    def getChild(self, suffix: str) -> logging.Logger:
        if suffix == self.name or suffix.startswith(self.name + "."):
            return self.manager.getLogger(suffix)
        return super().getChild(suffix)


def _package_logger(name: str) -> logging.Logger:
    previous = logging.getLoggerClass()
    logging.setLoggerClass(PackageLogger)
    try:
        return logging.getLogger(name)
    finally:
        logging.setLoggerClass(previous)


logger = _package_logger("tre")


def setup(level: int = logging.INFO, stream: Optional[object] = None) -> None:
    """Install one stream handler on the package root logger.

    Calling it again only adjusts the level.
    """
    logger.setLevel(level)
    if any(getattr(h, "_tre_handler", False) for h in logger.handlers):
        return
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._tre_handler = True
    logger.addHandler(handler)
