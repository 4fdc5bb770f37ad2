"""Shared test fixtures."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from plyglot.chat.gateway import CompletionGateway
from plyglot.chat.history import SessionHistoryStore
from plyglot.chat.providers import LLMResponse, LLMRouter
from plyglot.chat.usage import UsageAccumulator
from plyglot.gateway.connection_router import ConnectionRouter
from plyglot.shared.config import Settings

USAGE_80 = {"prompt_tokens": 50, "completion_tokens": 30, "total_tokens": 80}


def make_response(content: str | None = "Bonjour", usage: dict | None = None) -> LLMResponse:
    """Build a provider response with the standard 80-token usage by default."""
    return LLMResponse(
        content=content,
        model="gpt-4",
        provider="openai",
        usage=dict(USAGE_80) if usage is None else usage,
    )


class RecordingEmitter:
    """Collects events a router emits to one connection."""

    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    async def __call__(self, event: str, data: dict) -> None:
        self.events.append((event, data))

    def named(self, event: str) -> list[dict]:
        return [data for name, data in self.events if name == event]


@pytest.fixture
def llm_response():
    """Factory for provider responses."""
    return make_response


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, OPENAI_API_KEY="test-key", DEBUG=True)


@pytest.fixture
def usage() -> UsageAccumulator:
    return UsageAccumulator()


@pytest.fixture
def history_store(test_settings) -> SessionHistoryStore:
    return SessionHistoryStore(max_history_length=test_settings.MAX_HISTORY_LENGTH)


@pytest.fixture
def mock_llm_router() -> AsyncMock:
    """LLM router whose generate() returns a fixed translation."""
    router = AsyncMock(spec=LLMRouter)
    router.generate.return_value = make_response()
    return router


@pytest.fixture
def completion_gateway(mock_llm_router, usage, test_settings) -> CompletionGateway:
    return CompletionGateway(mock_llm_router, usage, test_settings)


@pytest.fixture
def connection_router(history_store, completion_gateway, usage) -> ConnectionRouter:
    return ConnectionRouter(history_store, completion_gateway, usage)


@pytest.fixture
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


@pytest.fixture
def test_app(test_settings, mock_llm_router):
    """Application wired to the mocked LLM router."""
    from plyglot.gateway.main import create_app

    return create_app(test_settings, llm_router=mock_llm_router)


@pytest_asyncio.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    async with AsyncClient(
        transport=ASGITransport(app=test_app), base_url="http://test"
    ) as ac:
        yield ac
