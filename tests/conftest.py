import pytest

from text2sql_chat.core.config import Settings
from text2sql_chat.store.chat_store import ChatStore
from text2sql_chat.store.storage import MemoryStorage

UPSTREAM_URL = "https://upstream.test"


@pytest.fixture
def settings():
    return Settings(
        TEXT2SQL_API_BASE_URL=UPSTREAM_URL,
        TEXT2SQL_API_KEY="test-key",
        TEXT2SQL_CONNECTION_ID="conn-123",
        TEXT2SQL_PROXY_URL=None,
    )


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return ChatStore(storage)
