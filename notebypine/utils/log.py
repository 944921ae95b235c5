"""
Logging setup shared by the API server, the MCP server and the CLI.

Every record is passed through the redaction patterns before a handler
formats it, so emails, keys and tokens that end up in log messages are
masked on the way out.
"""

import logging
import sys
from typing import Optional, TextIO

from notebypine.agent.redact import redact_string

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class RedactingFilter(logging.Filter):
    """Rewrite the rendered log message with sensitive values masked."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        record.msg = redact_string(message)
        record.args = None
        return True


def configure_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """Configure root logging with redaction.

    Args:
        level: Log level name.
        stream: Output stream. The MCP server passes sys.stderr because
            stdout carries the protocol.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=stream or sys.stderr,
        force=True,
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(RedactingFilter())

    # httpx logs every request URL at INFO, including PocketBase filters
    logging.getLogger("httpx").setLevel(logging.WARNING)
