"""
Pytest configuration and fixtures for agentrelay tests.
"""

import asyncio
import tempfile
from collections.abc import AsyncIterator, Generator
from pathlib import Path

import pytest
from typer.testing import CliRunner

from agentrelay.relay.exceptions import MessageNotFoundError
from agentrelay.relay.models import InboundMessage
from agentrelay.relay.transport import ChatTransport


class FakeTransport(ChatTransport):
    """In-memory chat transport recording every call.

    ``calls`` holds ``(kind, destination, message_id, text, loop_time)``
    tuples where kind is "post" or "update".
    """

    def __init__(self, identity: str = "UBOT", max_message_length: int = 3900):
        super().__init__()
        self._identity = identity
        self._max_message_length = max_message_length
        self._next_ts = 0
        self._inbound: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self.calls: list[tuple] = []
        self.messages: dict[str, str] = {}
        self.fail_post: Exception | None = None
        self.fail_update: Exception | None = None

    @property
    def max_message_length(self) -> int:
        return self._max_message_length

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False

    async def receive_messages(self) -> AsyncIterator[InboundMessage]:
        while self._running:
            yield await self._inbound.get()

    def push(self, message: InboundMessage) -> None:
        self._inbound.put_nowait(message)

    async def post_message(self, destination: str, text: str) -> str:
        if self.fail_post is not None:
            raise self.fail_post
        self._next_ts += 1
        ts = f"{self._next_ts}.000"
        self.messages[ts] = text
        self.calls.append(("post", destination, ts, text, asyncio.get_running_loop().time()))
        return ts

    async def update_message(self, destination: str, message_id: str, text: str) -> None:
        if self.fail_update is not None:
            raise self.fail_update
        if message_id not in self.messages:
            raise MessageNotFoundError(destination, message_id)
        self.messages[message_id] = text
        self.calls.append(("update", destination, message_id, text, asyncio.get_running_loop().time()))

    def posts(self, destination: str | None = None) -> list[str]:
        return [c[3] for c in self.calls if c[0] == "post" and destination in (None, c[1])]

    def updates(self, destination: str | None = None) -> list[str]:
        return [c[3] for c in self.calls if c[0] == "update" and destination in (None, c[1])]


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def relay_home(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point AGENTRELAY_HOME at an empty directory and clear relay env vars."""
    import os

    home = temp_dir / ".agentrelay"
    home.mkdir()
    for key in list(os.environ):
        if key.startswith("AGENTRELAY_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("AGENTRELAY_HOME", str(home))
    return home


@pytest.fixture
def transport() -> FakeTransport:
    """Provide a started in-memory transport."""
    fake = FakeTransport()
    fake._running = True
    return fake


@pytest.fixture
def sample_config() -> dict:
    """Provide a sample configuration dictionary."""
    return {
        "bots": {
            "support": {
                "bot_token": "xoxb-test",
                "app_token": "xapp-test",
                "signing_secret": "secret",
                "channels": {
                    "general": {
                        "channel_id": "C001",
                        "allowed_users": [],
                        "agent_type": "echo",
                    },
                    "ops": {
                        "channel_id": "C002",
                        "allowed_users": ["UALICE"],
                        "agent_type": "echo",
                    },
                },
            },
        },
        "relay": {
            "min_flush_interval": 0.25,
            "max_message_length": 3900,
        },
    }


@pytest.fixture
def sample_config_yaml(temp_dir: Path, sample_config: dict) -> Path:
    """Write the sample configuration to a YAML file."""
    import yaml

    path = temp_dir / "relay.yaml"
    path.write_text(yaml.safe_dump(sample_config))
    return path


@pytest.fixture
def make_transport():
    """Provide a factory for additional in-memory transports."""

    def _make(identity: str = "UBOT", max_message_length: int = 3900) -> FakeTransport:
        fake = FakeTransport(identity=identity, max_message_length=max_message_length)
        fake._running = True
        return fake

    return _make
