"""Logging setup; every record carries the id of the edit session that emitted it"""

import logging
import sys
from contextvars import ContextVar
from typing import Optional


LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(session_id)s] %(name)s: %(message)s"

# bound by EditSession.run; worker threads inherit it via copy_context()
session_id_ctx: ContextVar[Optional[str]] = ContextVar("session_id", default=None)


def get_session_id() -> str:
    """Return the active session id, or '-' when no session is bound."""
    return session_id_ctx.get() or "-"


class SessionIDFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = get_session_id()
        return True


def configure_logging(level: str = "INFO") -> None:
    """Send wordmd and library logs to stderr at ``level``. Safe to call repeatedly."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(SessionIDFilter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    logging.getLogger("markdown_it").setLevel(logging.WARNING)


logger = logging.getLogger("wordmd")
