"""Shared fixtures for mailauth unit tests."""

from unittest.mock import AsyncMock, patch

import pytest

from tests.support import InMemoryConfigurationStore, MockHttp, make_config


@pytest.fixture
def store():
    """Empty in-memory configuration store."""
    return InMemoryConfigurationStore()


@pytest.fixture
def google_config(store):
    return store.add(make_config("google"))


@pytest.fixture
def microsoft_config(store):
    return store.add(make_config("microsoft"))


@pytest.fixture
def http():
    """Patch httpx.AsyncClient; configure ``http.post`` / ``http.get`` per test."""
    with patch("httpx.AsyncClient") as mock_client:
        mock_instance = AsyncMock()
        mock_client.return_value.__aenter__.return_value = mock_instance
        yield MockHttp(mock_client, mock_instance)
