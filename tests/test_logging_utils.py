import logging

import pytest

from tool_warden.logging_utils import configure_logging, default_log_path, level_for, reset_logging


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    reset_logging()
    root.handlers = handlers
    root.setLevel(level)


def test_logs_to_requested_file(tmp_path, root_logger):
    path = tmp_path / "logs" / "warden.log"
    assert configure_logging(str(path), also_console=False) == str(path)

    logging.getLogger("tool_warden.sandbox").warning("Path outside allowed roots: /etc")
    for h in root_logger.handlers:
        h.flush()
    text = path.read_text(encoding="utf-8")
    assert "Logging initialized" in text
    assert "WARNING tool_warden.sandbox: Path outside allowed roots: /etc" in text


def test_second_call_adds_no_handlers(tmp_path, root_logger):
    path = tmp_path / "warden.log"
    configure_logging(str(path), also_console=False)
    count = len(root_logger.handlers)
    assert configure_logging(str(tmp_path / "other.log")) == str(path)
    assert len(root_logger.handlers) == count


def test_falls_back_to_working_directory(tmp_path, monkeypatch, root_logger):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    actual = configure_logging(str(blocker / "warden.log"), also_console=False)
    assert actual == str(tmp_path.resolve() / "tool-warden.log")


def test_reset_allows_moving_the_log(tmp_path, root_logger):
    before = list(root_logger.handlers)
    first = tmp_path / "first.log"
    configure_logging(str(first), also_console=False)
    reset_logging()
    assert root_logger.handlers == before

    second = tmp_path / "second.log"
    assert configure_logging(second, also_console=False) == str(second)


def test_console_shows_warnings_unless_debug(tmp_path, root_logger):
    configure_logging(str(tmp_path / "a.log"))
    [console] = [h for h in root_logger.handlers if type(h) is logging.StreamHandler]
    assert console.level == logging.WARNING
    reset_logging()

    configure_logging(str(tmp_path / "b.log"), level=logging.DEBUG)
    [console] = [h for h in root_logger.handlers if type(h) is logging.StreamHandler]
    assert console.level == logging.DEBUG


def test_default_log_path(tmp_path):
    assert default_log_path(tmp_path) == tmp_path / ".tool-warden" / "warden.log"


@pytest.mark.parametrize(
    "verbose,configured,expected",
    [
        (True, logging.WARNING, logging.DEBUG),
        (False, logging.WARNING, logging.WARNING),
        (False, logging.INFO, logging.INFO),
    ],
)
def test_level_for(verbose, configured, expected):
    assert level_for(verbose, configured) == expected
