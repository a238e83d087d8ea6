import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import pytest  # noqa: E402
from core.config import Settings, _reset_settings_cache_for_tests  # noqa: E402
from core.persistence import MatchStore  # noqa: E402
from telegram_bot.client import TelegramAPIError  # noqa: E402


@pytest.fixture(autouse=True)
def reset_settings_cache():
    _reset_settings_cache_for_tests()
    yield
    _reset_settings_cache_for_tests()


ADMIN_CHAT = "100"
CHANNEL_CHAT = "@predictions"


@pytest.fixture
def bot_settings(monkeypatch, tmp_path) -> Settings:
    monkeypatch.setenv("API_FOOTBALL_KEY", "DUMMY")
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:ABC")
    monkeypatch.setenv("ADMIN_CHAT_ID", ADMIN_CHAT)
    monkeypatch.setenv("CHANNEL_CHAT_ID", CHANNEL_CHAT)
    monkeypatch.setenv("FOOTBALL_LEAGUES", "39:2025")
    monkeypatch.setenv("BOT_DB_PATH", str(tmp_path / "bot.db"))
    monkeypatch.setenv("BOT_TIMEZONE", "UTC")
    monkeypatch.delenv("FOOTBALL_LEAGUES_FILE", raising=False)
    return Settings.from_env()


@pytest.fixture
def store(tmp_path):
    s = MatchStore(str(tmp_path / "test.db"))
    yield s
    s.close()


class FakeTelegramClient:
    """Registra le chiamate Bot API invece di inviarle."""

    def __init__(self):
        self.sent = []
        self.edits = []
        self.documents = []
        self.commands = None
        self.updates = []
        self.edit_error = None
        self.send_error = None
        self._next_id = 1000

    def send_message(self, chat_id, text, *, disable_notification=False):
        if self.send_error is not None:
            raise self.send_error
        self._next_id += 1
        self.sent.append((chat_id, text))
        return self._next_id

    def edit_message_text(self, chat_id, message_id, text):
        if self.edit_error is not None:
            raise self.edit_error
        self.edits.append((chat_id, message_id, text))

    def send_document(self, chat_id, path, caption=None):
        self.documents.append((chat_id, Path(path), caption))
        self._next_id += 1
        return self._next_id

    def set_my_commands(self, commands):
        self.commands = list(commands)

    def get_updates(self, offset=None, timeout=30):
        if not self.updates:
            return []
        return self.updates.pop(0)

    def texts_for(self, chat_id):
        return [t for c, t in self.sent if c == chat_id]


class FakeLLM:
    """Risposte in sequenza; un'eccezione nella lista viene sollevata."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.prompts = []

    def complete(self, prompt):
        self.prompts.append(prompt)
        item = self.responses.pop(0) if self.responses else ""
        if isinstance(item, Exception):
            raise item
        return item


def prediction_text(start="2025-01-01 18:00", match_type="type", home="A", away="B", outcome="A", score="2:1", odds="1.8"):
    return (
        f"[Match Start]: [{start}]\n"
        f"[Match Type]: [{match_type}]\n"
        f"[Teams]: [{home} vs. {away}]\n"
        f"[Match Outcome]: [{outcome}]\n"
        f"[Score]: [{score}]\n"
        f"[Odd for Match Outcome]: [{odds}]"
    )


@pytest.fixture
def telegram():
    return FakeTelegramClient()


@pytest.fixture
def not_modified_error():
    return TelegramAPIError(
        "Bad Request: message is not modified: specified new message content and reply markup "
        "are exactly the same as a current content and reply markup of the message",
        400,
    )
