"""core.log

Console logging set-up for the CLI.  Library modules only ever call
``logging.getLogger(__name__)``; handlers are installed here, once.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'


def configure_logging(level: str = 'info', *, verbose: bool = False) -> None:
    """Send *knightcode* log records to stderr at *level* (``debug`` when *verbose*)."""
    resolved = logging.DEBUG if verbose else logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO

    root = logging.getLogger('knightcode')
    root.setLevel(resolved)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    # The HTTP client libraries are chatty at debug level
    for noisy in ('httpx', 'httpcore', 'openai'):
        logging.getLogger(noisy).setLevel(logging.WARNING)
