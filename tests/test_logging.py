import pytest

from onnxlower.utils import logging as lower_logging


@pytest.fixture
def restore_log_level():
    level = lower_logging.get_log_level()
    yield
    lower_logging.set_log_level(level)


def test_log_level_gates_output(capsys, restore_log_level) -> None:
    lower_logging.set_log_level("error")
    lower_logging.info("hidden")
    lower_logging.warn("hidden too")
    lower_logging.error("shown")
    out = capsys.readouterr().out
    assert "hidden" not in out
    assert "ERROR:" in out
    assert "shown" in out


def test_verbose_level_shows_everything(capsys, restore_log_level) -> None:
    lower_logging.set_log_level("verbose")
    lower_logging.verbose("node detail")
    lower_logging.warn("careful", prefix=False)
    out = capsys.readouterr().out
    assert "VERBOSE:" in out
    assert "node detail" in out
    assert "WARNING:" not in out
    assert "careful" in out
    assert lower_logging.get_log_level() == lower_logging.LOG_LEVELS["verbose"]


def test_unknown_level_name_is_rejected(restore_log_level) -> None:
    with pytest.raises(KeyError):
        lower_logging.set_log_level("chatty")
