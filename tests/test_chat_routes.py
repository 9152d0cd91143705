"""
Tests for the chat HTTP API and the REST client against it
"""

from typing import List

import pytest
import pytest_asyncio
from aiohttp import test_utils

from cortex_chat.api.auth import TokenAuthenticator
from cortex_chat.config.app_config import AppConfig
from cortex_chat.infrastructure.external.chat_api_client import ApiError, ChatApiClient
from cortex_chat.infrastructure.storage.key_value_store import MemoryStorage
from cortex_chat.server import create_app
from cortex_chat.services.ai_service.fallback_service import ERROR_PREFIX, OVERLOADED_MESSAGE
from cortex_chat.services.ai_service.generation_client import GenerationResult
from cortex_chat.services.chat_service.chat_store import SqliteChatStore
from cortex_chat.services.chat_service.events import ChatEvents
from cortex_chat.services.chat_service.local_cache import LocalChatCache
from cortex_chat.services.chat_service.session_manager import ChatSessionManager, SendStatus
from cortex_chat.services.ui_service.response_delivery import ResponseDeliverySimulator
from conftest import instant_sleep

ALICE = {"Authorization": "Bearer alice-token"}
BOB = {"Authorization": "Bearer bob-token"}
MAX_BODY_BYTES = 2048


class UpstreamError(Exception):
    def __init__(self, status_code):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class FakeGenerationClient:
    """Returns a fixed reply or raises a configured error; records prompts"""

    def __init__(self):
        self.reply = "Stock for P/N 123 is 4 units."
        self.error = None
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> GenerationResult:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return GenerationResult(text=self.reply, model_used="fake", attempts=1)


@pytest.fixture
def store(tmp_path):
    return SqliteChatStore(str(tmp_path / "chats.db"))


@pytest.fixture
def generator():
    return FakeGenerationClient()


@pytest.fixture
def app(store, generator):
    config = AppConfig()
    config.server.max_body_bytes = MAX_BODY_BYTES
    return create_app(
        config,
        store=store,
        generation_client=generator,
        authenticate=TokenAuthenticator({"alice-token": "alice", "bob-token": "bob"}),
    )


@pytest_asyncio.fixture
async def client(app):
    async with test_utils.TestClient(test_utils.TestServer(app)) as test_client:
        yield test_client


async def create_chat(client, title="Inventory question", mode=None, headers=ALICE) -> str:
    response = await client.post("/chats", json={"title": title, "mode": mode}, headers=headers)
    assert response.status == 200
    return (await response.json())["chat"]["id"]


class TestChatEndpoint:

    @pytest.mark.asyncio
    async def test_reply_persists_both_messages(self, client, generator):
        chat_id = await create_chat(client)

        response = await client.post("/chat", json={"message": "Stock of P/N 123?", "chatId": chat_id,
                                                    "mode": "Inventory"}, headers=ALICE)
        assert response.status == 200
        body = await response.json()
        assert body["response"] == generator.reply
        assert "degraded" not in body

        assert "inventory management specialist" in generator.prompts[0]
        assert "User: Stock of P/N 123?" in generator.prompts[0]

        chat = await (await client.get(f"/chats/{chat_id}", headers=ALICE)).json()
        messages = chat["chat"]["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant"]
        assert [m["id"] for m in messages] == [body["userMessageId"], body["messageId"]]

    @pytest.mark.asyncio
    async def test_declared_oversized_body_rejected(self, client, generator):
        response = await client.post("/chat", data=b"x" * (MAX_BODY_BYTES + 1),
                                     headers={**ALICE, "Content-Type": "application/json"})

        assert response.status == 413
        assert (await response.json()) == {"error": "Request body too large", "limit": MAX_BODY_BYTES}
        assert generator.prompts == []

    @pytest.mark.asyncio
    async def test_streamed_oversized_body_rejected(self, client):
        async def chunks():
            for _ in range(4):
                yield b"x" * MAX_BODY_BYTES

        response = await client.post("/chat", data=chunks(), headers=ALICE)
        assert response.status == 413

    @pytest.mark.asyncio
    async def test_size_checked_before_authentication(self, client):
        response = await client.post("/chat", data=b"x" * (MAX_BODY_BYTES + 1))
        assert response.status == 413

    @pytest.mark.asyncio
    async def test_unauthenticated(self, client):
        response = await client.post("/chat", json={"message": "hi", "chatId": "c1"})
        assert response.status == 401

        response = await client.post("/chat", json={"message": "hi", "chatId": "c1"},
                                     headers={"Authorization": "Bearer wrong"})
        assert response.status == 401

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload,error", [
        ({"chatId": "c1"}, "Message is required"),
        ({"message": "   ", "chatId": "c1"}, "Message is required"),
        ({"message": "hi"}, "Chat ID is required"),
        ({"message": "hi", "chatId": "c1", "mode": 7}, "Mode must be a string"),
    ])
    async def test_invalid_requests(self, client, payload, error):
        response = await client.post("/chat", json=payload, headers=ALICE)
        assert response.status == 400
        assert (await response.json())["error"] == error

    @pytest.mark.asyncio
    async def test_invalid_json(self, client):
        response = await client.post("/chat", data=b"{not json", headers=ALICE)
        assert response.status == 400

    @pytest.mark.asyncio
    async def test_unknown_chat(self, client, generator):
        response = await client.post("/chat", json={"message": "hi", "chatId": "missing"}, headers=ALICE)
        assert response.status == 404
        assert generator.prompts == []

    @pytest.mark.asyncio
    async def test_other_users_chat(self, client):
        chat_id = await create_chat(client)
        response = await client.post("/chat", json={"message": "hi", "chatId": chat_id}, headers=BOB)
        assert response.status == 404

    @pytest.mark.asyncio
    async def test_exhausted_transient_failure_degrades(self, client, generator):
        chat_id = await create_chat(client)
        generator.error = UpstreamError(503)

        response = await client.post("/chat", json={"message": "hi", "chatId": chat_id}, headers=ALICE)

        assert response.status == 200
        body = await response.json()
        assert body["degraded"] is True
        assert body["response"] == OVERLOADED_MESSAGE

        chat = await (await client.get(f"/chats/{chat_id}", headers=ALICE)).json()
        assert chat["chat"]["messages"][-1]["content"] == OVERLOADED_MESSAGE

    @pytest.mark.asyncio
    async def test_non_transient_failure_is_server_error(self, client, generator):
        chat_id = await create_chat(client)
        generator.error = UpstreamError(401)

        response = await client.post("/chat", json={"message": "hi", "chatId": chat_id}, headers=ALICE)

        assert response.status == 500
        assert (await response.json())["error"] == "Failed to generate response"

    @pytest.mark.asyncio
    async def test_deep_search_accepted(self, client, generator):
        chat_id = await create_chat(client)
        response = await client.post("/chat", json={"message": "hi", "chatId": chat_id, "deepSearch": True},
                                     headers=ALICE)
        assert response.status == 200


class TestChatsEndpoints:

    @pytest.mark.asyncio
    async def test_create_requires_title(self, client):
        response = await client.post("/chats", json={"title": " "}, headers=ALICE)
        assert response.status == 400

    @pytest.mark.asyncio
    async def test_list_is_per_user(self, client):
        await create_chat(client, "alice chat")
        await create_chat(client, "bob chat", headers=BOB)

        body = await (await client.get("/chats", headers=ALICE)).json()
        assert [c["title"] for c in body["chats"]] == ["alice chat"]

    @pytest.mark.asyncio
    async def test_patch(self, client):
        chat_id = await create_chat(client, mode="Inventory")

        response = await client.patch(f"/chats/{chat_id}", json={"title": "Renamed", "isFavorite": True},
                                      headers=ALICE)
        chat = (await response.json())["chat"]
        assert chat["title"] == "Renamed"
        assert chat["isFavorite"] is True
        assert chat["mode"] == "Inventory"

        response = await client.patch(f"/chats/{chat_id}", json={"mode": None}, headers=ALICE)
        assert (await response.json())["chat"].get("mode") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{}, {"isFavorite": "yes"}, {"title": ""}, {"mode": 3}])
    async def test_patch_validation(self, client, payload):
        chat_id = await create_chat(client)
        response = await client.patch(f"/chats/{chat_id}", json=payload, headers=ALICE)
        assert response.status == 400

    @pytest.mark.asyncio
    async def test_delete(self, client):
        chat_id = await create_chat(client)

        assert (await client.delete(f"/chats/{chat_id}", headers=ALICE)).status == 200
        assert (await client.get(f"/chats/{chat_id}", headers=ALICE)).status == 404
        assert (await client.delete(f"/chats/{chat_id}", headers=ALICE)).status == 404


class TestChatApiClient:
    """REST client against the real routes"""

    @pytest_asyncio.fixture
    async def api(self, client):
        api_client = ChatApiClient(str(client.make_url("/")), api_token="alice-token")
        yield api_client
        await api_client.close()

    @pytest.mark.asyncio
    async def test_full_exchange(self, api, generator):
        chat = await api.create_chat("Spare parts", "Purchasing")
        reply = await api.send_message(chat.id, "Who sells P/N 123?", chat.mode)

        assert reply.text == generator.reply
        assert reply.degraded is False

        loaded = await api.get_chat(chat.id)
        assert [m.id for m in loaded.messages] == [reply.user_message_id, reply.message_id]

        listed = await api.list_chats()
        assert [c.id for c in listed] == [chat.id]

    @pytest.mark.asyncio
    async def test_update_and_delete(self, api):
        chat = await api.create_chat("Spare parts", "Purchasing")

        updated = await api.update_chat(chat.id, is_favorite=True)
        assert updated.is_favorite is True

        cleared = await api.update_chat(chat.id, clear_mode=True)
        assert cleared.mode is None

        await api.delete_chat(chat.id)
        with pytest.raises(ApiError) as exc_info:
            await api.get_chat(chat.id)
        assert exc_info.value.status == 404
        assert exc_info.value.message == "Chat not found"

    @pytest.mark.asyncio
    async def test_degraded_flag(self, api, generator):
        chat = await api.create_chat("Spare parts")
        generator.error = UpstreamError(429)

        reply = await api.send_message(chat.id, "hi")
        assert reply.degraded is True

    @pytest.mark.asyncio
    async def test_unauthorized_token(self, client):
        async with ChatApiClient(str(client.make_url("/")), api_token="stolen") as api:
            with pytest.raises(ApiError) as exc_info:
                await api.list_chats()
        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_network_error_has_no_status(self, unused_tcp_port):
        async with ChatApiClient(f"http://127.0.0.1:{unused_tcp_port}", timeout=2) as api:
            with pytest.raises(ApiError) as exc_info:
                await api.list_chats()
        assert exc_info.value.status is None


class TestSessionAgainstRoutes:
    """Session manager talking to the real routes through the REST client"""

    @pytest_asyncio.fixture
    async def session(self, client):
        api = ChatApiClient(str(client.make_url("/")), api_token="alice-token")
        cache = LocalChatCache(MemoryStorage())
        manager = ChatSessionManager(api, cache, ChatEvents(),
                                     delivery=ResponseDeliverySimulator(sleep=instant_sleep))
        yield manager
        manager.close()
        await api.close()

    @pytest.mark.asyncio
    async def test_hard_failure_is_explicit_error(self, session, generator):
        generator.error = UpstreamError(401)

        outcome = await session.send_message("hello")

        assert outcome.status == SendStatus.FAILED
        assert session.messages[-1].content == f"{ERROR_PREFIX}Failed to generate response"

    @pytest.mark.asyncio
    async def test_degraded_reply_persisted_on_server(self, session, generator):
        generator.error = UpstreamError(503)

        outcome = await session.send_message("hello")
        chat_id = session.current_chat_id

        assert outcome.status == SendStatus.DEGRADED
        assert session.messages[-1].content == OVERLOADED_MESSAGE

        session.reset_conversation()
        session.cache.delete(chat_id)
        assert await session.hydrate(chat_id)
        assert [m.content for m in session.messages] == ["hello", OVERLOADED_MESSAGE]
