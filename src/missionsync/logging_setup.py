"""Console logging with Rich.

Created: 2026-02-14
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

# Libraries that are chatty at INFO
_QUIET_LOGGERS = ("watchdog", "uvicorn.access", "httpx")


def setup_logging(level: str = "INFO") -> None:
    """Install a RichHandler on the root logger.

    Safe to call more than once; existing handlers are replaced.
    """
    handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        show_path=False,
        markup=False,
    )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
