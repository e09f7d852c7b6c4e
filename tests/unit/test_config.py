"""
Unit tests for DaemonConfig.
"""

import pytest

from authd.config import DaemonConfig


class TestFromEnv:

    def test_defaults(self):
        config = DaemonConfig.from_env({})

        assert config.socket_path == "/run/authd/socket"
        assert config.group == "mail"
        assert config.passwd_file == "/etc/authd/passwd"
        assert config.lockfile == "/run/authd/authd.pid"
        assert config.foreground is False
        assert config.client_timeout == 30.0
        assert config.log_level == "INFO"
        assert config.syslog_address == "/dev/log"

    def test_overrides(self):
        config = DaemonConfig.from_env({
            "AUTHD_SOCKET": "/tmp/a.sock",
            "AUTHD_GROUP": "postfix",
            "AUTHD_PASSWD_FILE": "/tmp/passwd",
            "AUTHD_LOCKFILE": "/tmp/a.pid",
            "AUTHD_FOREGROUND": "yes",
            "AUTHD_CLIENT_TIMEOUT": "2.5",
            "AUTHD_LOG_LEVEL": "debug",
            "AUTHD_SYSLOG": "/var/run/syslog",
        })

        assert config.socket_path == "/tmp/a.sock"
        assert config.group == "postfix"
        assert config.passwd_file == "/tmp/passwd"
        assert config.lockfile == "/tmp/a.pid"
        assert config.foreground is True
        assert config.client_timeout == 2.5
        assert config.log_level == "DEBUG"
        assert config.syslog_address == "/var/run/syslog"

    def test_zero_timeout_disables_it(self):
        assert DaemonConfig.from_env({"AUTHD_CLIENT_TIMEOUT": "0"}).client_timeout is None

    def test_empty_syslog_disables_it(self):
        assert DaemonConfig.from_env({"AUTHD_SYSLOG": ""}).syslog_address is None

    @pytest.mark.parametrize("value", ["0", "no", "", "off"])
    def test_foreground_false_values(self, value):
        assert DaemonConfig.from_env({"AUTHD_FOREGROUND": value}).foreground is False


class TestValidate:

    def test_defaults_are_valid(self):
        DaemonConfig().validate()

    @pytest.mark.parametrize("overrides", [
        {"socket_path": ""},
        {"lockfile": ""},
        {"socket_path": "/tmp/same", "lockfile": "/tmp/same"},
        {"backlog": 0},
        {"poll_interval": 0},
        {"client_timeout": -1.0},
        {"shutdown_max_retries": -1},
        {"log_level": "TRACE"},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            DaemonConfig(**overrides).validate()

    def test_no_timeout_is_valid(self):
        DaemonConfig(client_timeout=None).validate()


class TestFromEnvErrors:

    def test_non_numeric_timeout(self):
        with pytest.raises(ValueError, match="AUTHD_CLIENT_TIMEOUT"):
            DaemonConfig.from_env({"AUTHD_CLIENT_TIMEOUT": "soon"})
