"""
Tests for the client composition root
"""

import pytest

from cortex_chat.client import build_chat_client
from cortex_chat.config.app_config import AppConfig
from cortex_chat.infrastructure.external.chat_api_client import ChatApiClient
from cortex_chat.infrastructure.storage.key_value_store import MemoryStorage
from cortex_chat.services.chat_service.models import Chat
from conftest import FakeBackend, at


def make_config(tmp_path) -> AppConfig:
    config = AppConfig()
    config.cache.storage_path = str(tmp_path / "local_storage.json")
    config.streaming.tick_interval = 0
    return config


class TestBuildChatClient:

    @pytest.mark.asyncio
    async def test_services_share_cache_and_events(self, tmp_path):
        backend = FakeBackend()
        backend.add_chat(Chat(id="other", title="Other chat", created_at=at(0), updated_at=at(0)))
        client = build_chat_client(make_config(tmp_path), storage=MemoryStorage(), backend=backend)

        await client.session.send_message("Where is my work order?")
        chat_id = client.session.current_chat_id
        assert client.cache.get(chat_id) is not None
        assert client.preferences.current_chat_id == chat_id

        client.directory.select_chat("other")
        await client.events.drain()
        assert client.session.current_chat_id == "other"

        await client.directory.delete_chat("other")
        assert client.session.current_chat_id is None

        await client.close()

    @pytest.mark.asyncio
    async def test_defaults_to_file_storage_and_rest_backend(self, tmp_path):
        config = make_config(tmp_path)
        config.api.chat_api_base_url = "http://chat.example:8080/"
        client = build_chat_client(config)

        assert isinstance(client.backend, ChatApiClient)
        assert client.backend.base_url == "http://chat.example:8080"

        client.preferences.dark_mode = True
        assert (tmp_path / "local_storage.json").exists()

        await client.close()
