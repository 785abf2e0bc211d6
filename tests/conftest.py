"""
Pytest configuration and fixtures for the test suite.

The inference backend is replaced by an in-process `httpx.MockTransport`, so the
real client, streaming parser and relay code run against canned Ollama replies.
"""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from app.services import OllamaClient, RelayService, SessionRegistry
from tests.fakes import SYSTEM_PROMPT, FakeOllama, make_client


@pytest.fixture(autouse=True)
def reset_singletons():
    OllamaClient.clear()
    SessionRegistry.clear()
    yield
    OllamaClient.clear()
    SessionRegistry.clear()


@pytest.fixture
def fake_ollama() -> FakeOllama:
    return FakeOllama()


@pytest_asyncio.fixture
async def ollama_client(fake_ollama: FakeOllama) -> AsyncIterator[OllamaClient]:
    client = make_client(fake_ollama)
    yield client
    await client.close()


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry(system_prompt=SYSTEM_PROMPT, max_turns=12, max_sessions=8)


@pytest.fixture
def relay(ollama_client: OllamaClient, registry: SessionRegistry) -> RelayService:
    return RelayService(client=ollama_client, sessions=registry)
