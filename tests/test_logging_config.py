"""Tests for logging setup."""

import logging

import pytest
from rich.logging import RichHandler

from repo_health.logging_config import get_logger, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    package = logging.getLogger("repo_health")
    level, package_level = root.level, package.level
    yield
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    root.setLevel(level)
    package.setLevel(package_level)


class TestSetupLogging:
    def test_single_rich_handler_on_stderr(self):
        setup_logging()
        handlers = [h for h in logging.getLogger().handlers if isinstance(h, RichHandler)]
        assert len(handlers) == 1
        assert handlers[0].console.stderr

    @pytest.mark.parametrize(
        "kwargs,level",
        [({}, logging.WARNING), ({"verbose": True}, logging.DEBUG), ({"quiet": True}, logging.ERROR)],
    )
    def test_levels(self, kwargs, level):
        assert setup_logging(**kwargs).level == level

    def test_verbose_env(self, monkeypatch):
        monkeypatch.setenv("VERBOSE", "true")
        assert setup_logging().level == logging.DEBUG

    def test_quiet_wins_over_env(self, monkeypatch):
        monkeypatch.setenv("VERBOSE", "1")
        assert setup_logging(quiet=True).level == logging.ERROR

    def test_no_file_option(self):
        with pytest.raises(TypeError):
            setup_logging(log_file="run.log")  # type: ignore[call-arg]


class TestGetLogger:
    def test_namespaced(self):
        assert get_logger("repo_health.pipeline").name == "repo_health.pipeline"
