import threading

from conftest import ADMIN_CHAT
from core.retry import RetryCancelled
from telegram_bot.bot import BOT_COMMANDS, BotRunner


class RecordingDispatcher:
    def __init__(self, fail_on=None):
        self.updates = []
        self.fail_on = fail_on

    def handle_update(self, update):
        if update.get("update_id") == self.fail_on:
            raise RuntimeError("handler rotto")
        self.updates.append(update)


def test_poll_once_tracks_offset_and_survives_handler_errors(telegram, bot_settings):
    telegram.updates = [[{"update_id": 10}, {"update_id": 11}, {"update_id": 12}]]
    dispatcher = RecordingDispatcher(fail_on=11)
    runner = BotRunner(telegram, dispatcher, bot_settings)
    assert runner.poll_once(timeout=0) == 3
    assert runner.offset == 13
    assert [u["update_id"] for u in dispatcher.updates] == [10, 12]


def test_register_and_announce(telegram, bot_settings):
    runner = BotRunner(telegram, RecordingDispatcher(), bot_settings)
    runner.register_commands()
    runner.announce_start()
    assert [c for c, _ in telegram.commands] == [c.lower() for c, _ in BOT_COMMANDS]
    assert telegram.texts_for(ADMIN_CHAT) == ["Bot has been started"]


def test_run_stops_on_event(telegram, bot_settings):
    stop = threading.Event()

    class StoppingDispatcher(RecordingDispatcher):
        def handle_update(self, update):
            super().handle_update(update)
            stop.set()

    telegram.updates = [[{"update_id": 1}]]
    dispatcher = StoppingDispatcher()
    BotRunner(telegram, dispatcher, bot_settings, stop).run()
    assert len(dispatcher.updates) == 1


def test_run_ends_when_rate_limit_wait_is_cancelled(telegram, bot_settings, monkeypatch):
    def cancelled(offset=None, timeout=30):
        raise RetryCancelled("shutdown")

    monkeypatch.setattr(telegram, "get_updates", cancelled)
    BotRunner(telegram, RecordingDispatcher(), bot_settings, threading.Event()).run()
    assert telegram.texts_for(ADMIN_CHAT) == ["Bot has been started"]
