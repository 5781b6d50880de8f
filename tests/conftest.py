"""Shared fixtures."""

import pytest

from common.chat_store import InMemoryChatStore
from common.config import Config
from fakes import FakeGateway


@pytest.fixture
def test_config() -> Config:
    """Create a test configuration."""
    return Config()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def chat_store() -> InMemoryChatStore:
    return InMemoryChatStore()
