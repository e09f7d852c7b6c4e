"""
=============================================================================
AUTHD CLI ENTRY POINT
=============================================================================

    # Run with defaults (detaches into the background)
    python -m authd

    # Stay in the foreground, custom socket and credential file
    python -m authd -d -s /tmp/authd.sock -p ./passwd

    # Let the "postfix" group talk to the daemon
    python -m authd -g postfix

Exit status:
    0   help printed, or clean shutdown after SIGTERM / SIGINT
    1   startup failed (lockfile present, lock held, bind failed)
    2   bad command line (argparse)

Settings without a flag (lockfile, timeouts, log level, syslog) are read
from AUTHD_* environment variables; see authd.config.

=============================================================================
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .config import DaemonConfig
from .log import setup_logging
from .server import AuthDaemon


# __name__ is "__main__" under python -m, outside the authd namespace.
logger = logging.getLogger("authd.cli")


def build_parser(defaults: DaemonConfig) -> argparse.ArgumentParser:
    """
    Build the option parser.

    Defaults come from ``defaults`` so the environment is reflected in
    the help output.
    """
    parser = argparse.ArgumentParser(
        prog="authd",
        description="Local authentication broker daemon",
        add_help=False,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"authd {__version__}",
    )

    parser.add_argument(
        "-s",
        dest="socket_path",
        metavar="path",
        default=defaults.socket_path,
        help=f"socket path (default: {defaults.socket_path})",
    )

    parser.add_argument(
        "-g",
        dest="group",
        metavar="name",
        default=defaults.group,
        help=f"group allowed to use the socket (default: {defaults.group})",
    )

    parser.add_argument(
        "-p",
        dest="passwd_file",
        metavar="path",
        default=defaults.passwd_file,
        help=f"credential store file (default: {defaults.passwd_file})",
    )

    parser.add_argument(
        "-d",
        dest="foreground",
        action="store_true",
        default=defaults.foreground,
        help="stay in the foreground instead of detaching",
    )

    parser.add_argument(
        "-h", "-?",
        action="help",
        help="show this help message and exit",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, configure logging, run the daemon."""
    try:
        config = DaemonConfig.from_env()
    except ValueError as e:
        setup_logging(syslog_address=None)
        logger.warning(f"Invalid configuration: {e}")
        return 1

    args = build_parser(config).parse_args(argv)

    config.socket_path = args.socket_path
    config.group = args.group
    config.passwd_file = args.passwd_file
    config.foreground = args.foreground

    setup_logging(
        level=config.log_level,
        syslog_address=config.syslog_address,
        facility=config.syslog_facility,
    )

    return AuthDaemon(config).run()


if __name__ == "__main__":
    sys.exit(main())
