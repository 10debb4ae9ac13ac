import os
import shutil
import sys
import uuid
from collections.abc import Generator
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

# Set PTB timedelta before importing telegram types; keep imports at top via noqa
os.environ.setdefault("PTB_TIMEDELTA", "1")
from telegram import Bot, CallbackQuery, Chat, Message, Update, User  # noqa: E402

# Ensure root path is available for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from downloader_bot.services.media_data import Metadata  # noqa: E402
from downloader_bot.services.process_runner import ToolOutput  # noqa: E402

REPO_TMP_ROOT = Path(__file__).resolve().parent / "_tmp"


def _ensure_repo_tmp_root() -> Path:
    REPO_TMP_ROOT.mkdir(exist_ok=True)
    return REPO_TMP_ROOT


class RepoTmpPathFactory:
    """Replacement for pytest's tmp_path_factory constrained to the repo."""

    def __init__(self, root: Path):
        self._root = root
        self._created: list[Path] = []

    def mktemp(self, basename: str, numbered: bool = True) -> Path:
        suffix = f"_{uuid.uuid4().hex}" if numbered else ""
        directory = basename if not suffix else f"{basename}{suffix}"
        path = self._root / directory
        path.mkdir(parents=True, exist_ok=False)
        self._created.append(path)
        return path

    def cleanup(self, path: Path | None = None) -> None:
        targets = [path] if path is not None else list(self._created)
        for target in targets:
            shutil.rmtree(target, ignore_errors=True)
            if target in self._created:
                self._created.remove(target)


@pytest.fixture(scope="session")
def tmp_path_factory() -> Generator[RepoTmpPathFactory, None, None]:
    factory = RepoTmpPathFactory(_ensure_repo_tmp_root())
    yield factory
    factory.cleanup()


@pytest.fixture
def tmp_path(tmp_path_factory: RepoTmpPathFactory) -> Generator[Path, None, None]:
    path = tmp_path_factory.mktemp("tmp")
    try:
        yield path
    finally:
        tmp_path_factory.cleanup(path)


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class FakeResponse:
    def __init__(
        self, text: str = "", status_code: int = 200, data: Any = None
    ) -> None:
        self.text = text
        self.status_code = status_code
        self._data = data

    def json(self):
        if self._data is None:
            raise ValueError("not json")
        return self._data


class FakeAsyncClient:
    """Stands in for httpx.AsyncClient; answers each URL from a fixed table."""

    def __init__(
        self,
        responses: dict[str, FakeResponse] | None = None,
        error: Exception | None = None,
    ) -> None:
        self._responses = responses or {}
        self._error = error
        self.calls: list[tuple[str, str, Any]] = []

    def __call__(self, *args, **kwargs):
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def _answer(self, method: str, url: str, payload: Any = None) -> FakeResponse:
        self.calls.append((method, url, payload))
        if self._error:
            raise self._error
        if url in self._responses:
            return self._responses[url]
        return FakeResponse(status_code=404)

    async def get(self, url, headers=None, params=None):
        return self._answer("GET", url)

    async def post(self, url, json=None, headers=None):
        return self._answer("POST", url, json)


@pytest.fixture
def fake_http(mocker):
    """Patches httpx.AsyncClient and returns a factory to configure it."""

    def _install(
        responses: dict[str, FakeResponse] | None = None,
        error: Exception | None = None,
    ) -> FakeAsyncClient:
        client = FakeAsyncClient(responses, error)
        mocker.patch.object(httpx, "AsyncClient", client)
        return client

    return _install


@pytest.fixture
def fake_tool(mocker):
    """Patches run_tool in a module and returns the AsyncMock."""

    def _install(target: str, *outputs: ToolOutput) -> AsyncMock:
        mock = AsyncMock(side_effect=list(outputs)) if len(outputs) > 1 else AsyncMock(
            return_value=outputs[0] if outputs else ToolOutput(0, "", "")
        )
        mocker.patch(target, new=mock)
        return mock

    return _install


@pytest.fixture
def metadata() -> Metadata:
    return Metadata(
        title="Never Gonna Give You Up",
        author="Rick Astley",
        duration_seconds=213,
        view_count=1_500_000_000,
        creation_date="20091025",
    )


@pytest.fixture
def user():
    return User(id=123, first_name="Test", is_bot=False)


@pytest.fixture
def chat():
    return Chat(id=456, type="private")


@pytest.fixture
def make_message(user, chat):
    def _make(text: str = "", message_id: int = 1, date: datetime | None = None):
        msg = Message(
            message_id=message_id,
            date=date or datetime.now(timezone.utc),
            chat=chat,
            from_user=user,
            text=text,
        )
        bot = Mock(spec=Bot)
        bot.delete_message = AsyncMock()
        bot.edit_message_text = AsyncMock()
        msg.set_bot(bot)
        return msg

    return _make


@pytest.fixture
def make_callback_query(user, make_message):
    def _make(data: str, message: Message | None = None):
        if message is None:
            message = make_message()
        return CallbackQuery(
            id="1", from_user=user, chat_instance="1", data=data, message=message
        )

    return _make


@pytest.fixture
def make_update():
    def _make(
        message: Message | None = None,
        callback_query: CallbackQuery | None = None,
        update_id: int = 1,
    ):
        return Update(
            update_id=update_id, message=message, callback_query=callback_query
        )

    return _make


@pytest.fixture
def context(make_message):
    bot = SimpleNamespace(
        send_message=AsyncMock(return_value=make_message()),
        delete_message=AsyncMock(),
        edit_message_text=AsyncMock(),
        send_chat_action=AsyncMock(),
        send_audio=AsyncMock(),
        send_video=AsyncMock(),
        send_document=AsyncMock(),
    )
    return SimpleNamespace(bot=bot, user_data={}, bot_data={})
