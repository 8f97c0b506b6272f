"""Process-wide logging setup.

Every module logs through ``logging.getLogger(__name__)``; this function only
installs one stream handler on the root logger, so calling it twice is safe.
"""

from __future__ import annotations

import logging
import sys

_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_HANDLER_NAME = "expense-ledger"


def configure_logging(level: str | int = "INFO") -> None:
    root = logging.getLogger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)

    if any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(handler)

    # SQL echo is controlled by SQLAlchemy's own flag, keep its logger quiet.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
