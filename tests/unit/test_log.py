"""
Unit tests for logging setup.
"""

import io
import logging
import os

from authd.log import SyslogFormatter, escape_percent, setup_logging


def make_record(msg, level=logging.INFO):
    return logging.LogRecord("authd.test", level, __file__, 1, msg, None, None)


class TestEscaping:

    def test_escape_percent(self):
        assert escape_percent("50%off") == "50%%off"
        assert escape_percent("no percent") == "no percent"

    def test_syslog_formatter_escapes(self):
        formatted = SyslogFormatter().format(make_record("user 100%s"))

        assert formatted.endswith("user 100%%s")
        assert formatted.startswith(f"authd[{os.getpid()}]: ")

    def test_args_are_merged_before_escaping(self):
        record = logging.LogRecord(
            "authd.test", logging.INFO, __file__, 1, "user %s", ("a%b",), None
        )
        assert SyslogFormatter().format(record).endswith("user a%%b")


class TestSetupLogging:

    def test_stream_output(self):
        stream = io.StringIO()
        setup_logging(level="INFO", syslog_address=None, stream=stream)

        logging.getLogger("authd.server").info("hello 5%")
        logging.getLogger("authd.server").debug("hidden")

        output = stream.getvalue()
        assert "[INFO] authd.server: hello 5%" in output
        assert "hidden" not in output

    def test_debug_level(self):
        stream = io.StringIO()
        setup_logging(level="DEBUG", syslog_address=None, stream=stream)

        logging.getLogger("authd.core.worker").debug("chatter")

        assert "chatter" in stream.getvalue()

    def test_repeated_setup_does_not_duplicate(self):
        stream = io.StringIO()
        setup_logging(syslog_address=None, stream=stream)
        logger = setup_logging(syslog_address=None, stream=stream)

        logging.getLogger("authd").warning("once")

        assert len(logger.handlers) == 1
        assert stream.getvalue().count("once") == 1

    def test_unreachable_syslog_falls_back(self, runtime_dir):
        stream = io.StringIO()
        logger = setup_logging(
            syslog_address=os.path.join(runtime_dir, "no-syslog"), stream=stream
        )

        assert len(logger.handlers) == 1
        assert "Syslog unavailable" in stream.getvalue()
