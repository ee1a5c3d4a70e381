"""
Unit tests for the command-line entry point and logging setup.
"""

import logging
import sys

import pytest

from fileserver import __version__
from fileserver.__main__ import build_parser, main, parse_config
from fileserver.config import ConfigurationError, OutputLevel
from fileserver.filters.output import ACCESS_LOGGER_NAME
from fileserver.server import HTTPServer, setup_logging


class TestParseConfig:
    """Tests for argument translation."""

    def test_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = parse_config([])

        assert config.host == "127.0.0.1"
        assert config.port == 8000
        assert config.output_level is OutputLevel.DEFAULT
        assert config.log_level == "INFO"

    def test_all_options(self, tmp_path):
        config = parse_config([
            "-b", "0.0.0.0",
            "-p", "9000",
            "-d", str(tmp_path),
            "-o", "verbose",
            "-w", "2",
            "-l", "debug",
        ])

        assert config.host == "0.0.0.0"
        assert config.port == 9000
        assert config.root == str(tmp_path)
        assert config.output_level is OutputLevel.VERBOSE
        assert (config.min_workers, config.max_workers) == (2, 2)
        assert config.log_level == "DEBUG"

    def test_relative_directory(self):
        with pytest.raises(ConfigurationError, match="absolute"):
            parse_config(["-d", "relative/dir"])

    def test_workers_must_be_positive(self, tmp_path):
        with pytest.raises(ConfigurationError, match="--workers"):
            parse_config(["-d", str(tmp_path), "-w", "0"])

    @pytest.mark.parametrize("argv", [
        ["-o", "loud"],
        ["-p", "eighty"],
        ["--no-such-flag"],
        ["-l", "chatty"],
    ])
    def test_argparse_rejects(self, argv, capsys):
        with pytest.raises(SystemExit) as exc_info:
            parse_config(argv)
        assert exc_info.value.code == 2

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestMain:
    """Tests for main() exit statuses."""

    def test_relative_directory_exit_status(self, capsys):
        assert main(["-d", "relative/dir"]) == 1
        assert "fileserver: error:" in capsys.readouterr().err

    def test_banner_reports_bound_port(self, tmp_path, monkeypatch, capsys, restore_logging):
        """With -p 0 the banner names the port the OS picked."""
        bound = []

        def fake_run(server):
            bound.append(server.address)
            server._socket_server._cleanup()

        monkeypatch.setattr(HTTPServer, "run", fake_run)

        assert main(["-d", str(tmp_path), "-p", "0", "-o", "none"]) == 0

        port = bound[0][1]
        assert port != 0
        assert f"on 127.0.0.1 port {port}" in capsys.readouterr().out

    def test_port_out_of_range(self, tmp_path, capsys):
        assert main(["-d", str(tmp_path), "-p", "70000"]) == 1


@pytest.fixture
def restore_logging():
    access = logging.getLogger(ACCESS_LOGGER_NAME)
    package = logging.getLogger("fileserver")
    saved = (list(access.handlers), access.level, access.propagate, package.level)
    yield
    access.handlers[:] = saved[0]
    access.setLevel(saved[1])
    access.propagate = saved[2]
    package.setLevel(saved[3])


class TestSetupLogging:
    """Tests for logging configuration."""

    def test_access_lines_go_to_stdout(self, restore_logging):
        setup_logging("WARNING")
        access = logging.getLogger(ACCESS_LOGGER_NAME)

        assert access.propagate is False
        assert access.level == logging.INFO
        streams = [getattr(h, "stream", None) for h in access.handlers]
        assert sys.stdout in streams
        assert logging.getLogger("fileserver").level == logging.WARNING

    def test_idempotent(self, restore_logging):
        setup_logging("INFO")
        setup_logging("INFO")
        assert len(logging.getLogger(ACCESS_LOGGER_NAME).handlers) == 1
