"""
=============================================================================
LOGGING SETUP
=============================================================================

Every event the daemon logs goes to two places:

    ┌─────────────┐       ┌──────────────────────┐
    │  authd.*    │ ────► │ StreamHandler        │  stderr, local diagnostics
    │  loggers    │       └──────────────────────┘  (/dev/null once detached)
    │             │       ┌──────────────────────┐
    │             │ ────► │ SysLogHandler        │  /dev/log, auth facility
    └─────────────┘       │ + SyslogFormatter    │  '%' escaped as '%%'
                          └──────────────────────┘

Three severities are used: DEBUG for per-connection chatter, INFO for
lifecycle and verdicts, WARNING for anything an operator should look at.

=============================================================================
WHY ESCAPE PERCENT SIGNS?
=============================================================================

Classic syslog daemons and log shippers may run the message through a
printf-style formatter again. A username such as "50%off" would then be
interpreted as a conversion specifier. Doubling every '%' makes the text
inert on the syslog side while stderr keeps the original.

=============================================================================
"""

import logging
import logging.handlers
import sys
from typing import Optional, TextIO


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
SYSLOG_FORMAT = "authd[%(process)d]: %(message)s"

logger = logging.getLogger(__name__)


def escape_percent(message: str) -> str:
    """Double every '%' so the text survives another printf pass."""
    return message.replace("%", "%%")


class SyslogFormatter(logging.Formatter):
    """Formatter for the syslog handler that escapes percent signs."""

    def __init__(self, fmt: str = SYSLOG_FORMAT):
        super().__init__(fmt)

    def format(self, record: logging.LogRecord) -> str:
        return escape_percent(super().format(record))


def setup_logging(
    level: str = "INFO",
    syslog_address: Optional[str] = "/dev/log",
    facility: str = "auth",
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure the ``authd`` logger namespace.

    Args:
        level: DEBUG, INFO or WARNING.
        syslog_address: Unix socket of the syslog daemon. None disables
                        syslog output.
        facility: Syslog facility name.
        stream: Stream for the local handler (default: stderr).

    Returns:
        The configured ``authd`` logger.

    Safe to call more than once: previously installed handlers are
    replaced rather than duplicated.
    """
    root = logging.getLogger("authd")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.propagate = False

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler(stream or sys.stderr)
    stream_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(stream_handler)

    if syslog_address:
        try:
            syslog_handler = logging.handlers.SysLogHandler(
                address=syslog_address,
                facility=logging.handlers.SysLogHandler.facility_names.get(
                    facility, logging.handlers.SysLogHandler.LOG_AUTH
                ),
            )
        except OSError as e:
            # No syslog daemon (containers, CI). Keep running on stderr only.
            logger.warning(f"Syslog unavailable at {syslog_address}: {e}")
        else:
            syslog_handler.setFormatter(SyslogFormatter())
            root.addHandler(syslog_handler)

    return root
