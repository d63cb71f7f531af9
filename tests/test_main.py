# tests/test_main.py
import importlib
from unittest.mock import Mock

import pytest


@pytest.fixture
def bot(tmp_path, monkeypatch):
    # main configures a file log handler on import
    monkeypatch.chdir(tmp_path)
    main = importlib.import_module("main")
    bot = main.PaperTradingBot()
    bot.session = Mock()
    bot.session.snapshot.return_value.has_position = False
    bot.replay = Mock()
    bot.ws = Mock()
    return bot


def test_stop_runs_shutdown_once(bot):
    bot.stop()
    bot.stop()

    bot.replay.stop.assert_called_once()
    bot.replay.join.assert_called_once()
    bot.ws.disconnect.assert_called_once()
    bot.session.stop.assert_called_once()
    assert bot.stopped
