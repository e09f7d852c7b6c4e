"""
Unit tests for the command line.
"""

import os

import pytest

from authd.__main__ import build_parser, main
from authd.config import DaemonConfig


class TestParser:

    def test_defaults_follow_config(self):
        defaults = DaemonConfig(socket_path="/tmp/x.sock", group="postfix")
        args = build_parser(defaults).parse_args([])

        assert args.socket_path == "/tmp/x.sock"
        assert args.group == "postfix"
        assert args.passwd_file == defaults.passwd_file
        assert args.foreground is False

    def test_all_flags(self):
        args = build_parser(DaemonConfig()).parse_args(
            ["-s", "/tmp/s", "-g", "staff", "-p", "/tmp/pw", "-d"]
        )

        assert args.socket_path == "/tmp/s"
        assert args.group == "staff"
        assert args.passwd_file == "/tmp/pw"
        assert args.foreground is True

    @pytest.mark.parametrize("flag", ["-h", "-?"])
    def test_help_exits_zero(self, flag, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser(DaemonConfig()).parse_args([flag])

        assert exc_info.value.code == 0
        assert "-s path" in capsys.readouterr().out

    def test_unknown_flag_exits_two(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser(DaemonConfig()).parse_args(["-x"])

        assert exc_info.value.code == 2


class TestMain:

    @pytest.fixture
    def env(self, monkeypatch, runtime_dir):
        monkeypatch.setenv("AUTHD_LOCKFILE", os.path.join(runtime_dir, "authd.pid"))
        monkeypatch.setenv("AUTHD_SYSLOG", "")
        return runtime_dir

    def test_existing_lockfile_exits_one(self, env, passwd_file, current_group):
        sock = os.path.join(env, "sock")
        with open(os.path.join(env, "authd.pid"), "w") as f:
            f.write("1\n")

        code = main(["-d", "-s", sock, "-g", current_group, "-p", passwd_file])

        assert code == 1
        assert not os.path.exists(sock)

    def test_invalid_environment_exits_one(self, env, monkeypatch):
        monkeypatch.setenv("AUTHD_LOG_LEVEL", "LOUD")

        assert main(["-d", "-s", os.path.join(env, "sock")]) == 1
        assert not os.path.exists(os.path.join(env, "authd.pid"))

    def test_non_numeric_timeout_exits_one(self, env, monkeypatch, capsys):
        monkeypatch.setenv("AUTHD_CLIENT_TIMEOUT", "soon")

        assert main(["-d", "-s", os.path.join(env, "sock")]) == 1
        assert "Invalid configuration" in capsys.readouterr().err
        assert not os.path.exists(os.path.join(env, "authd.pid"))
