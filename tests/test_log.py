"""Tests for stderr logging."""

import pytest

from run_in_roblox import log


@pytest.fixture(autouse=True)
def restore_level(monkeypatch):
    monkeypatch.setattr(log, "_level", log._level)


class TestLogger:
    def test_format(self, capsys):
        log.set_level("info")
        log.get_logger("runner").info("Studio is online", port=9001)

        err = capsys.readouterr().err
        assert "[I] [runner] Studio is online" in err
        assert '{"port": 9001}' in err

    def test_level_filter(self, capsys):
        log.set_level("warn")
        logger = log.get_logger("test")
        logger.info("hidden")
        logger.warn("shown")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "[W] [test] shown" in err

    def test_debug_level(self, capsys):
        log.set_level("debug")
        log.get_logger("test").debug("detail")
        assert "[D] [test] detail" in capsys.readouterr().err

    def test_unknown_level(self):
        with pytest.raises(ValueError):
            log.set_level("loud")
