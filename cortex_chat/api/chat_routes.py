"""
HTTP API for chats and generation.

Routes:
- POST   /chats        create a chat
- GET    /chats        list chats, each with its first message
- GET    /chats/{id}   full chat
- PATCH  /chats/{id}   update title, mode and/or favorite flag
- DELETE /chats/{id}   delete a chat
- POST   /chat         persist a user message and generate the reply

Generation failures that exhaust retries on a transient status still answer
200 with a persisted apology and `degraded: true`; other failures answer 500.
"""

import json
from typing import Any, Callable, Dict, Optional

from aiohttp import web

from cortex_chat.infrastructure.monitoring.logging_service import get_logger, log_execution_time
from cortex_chat.services.ai_service.domain_content import build_prompt
from cortex_chat.services.ai_service.fallback_service import FallbackService
from cortex_chat.services.ai_service.generation_client import GenerationClient
from cortex_chat.services.chat_service.chat_store import UNSET, ChatNotFoundError, SqliteChatStore
from cortex_chat.services.chat_service.models import Role

DEFAULT_MAX_BODY_BYTES = 8 * 1024 * 1024

logger = get_logger(__name__)


def _error(message: str, status: int, **extra: Any) -> web.Response:
    return web.json_response({"error": message, **extra}, status=status)


async def _read_json(request: web.Request) -> Optional[Dict[str, Any]]:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return payload if isinstance(payload, dict) else None


def register_routes(
    app: web.Application,
    *,
    store: SqliteChatStore,
    generation_client: GenerationClient,
    authenticate: Callable[[web.Request], Optional[str]],
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
    fallback: Optional[FallbackService] = None
) -> None:
    """
    Register the chat routes on an aiohttp application.

    The application's client_max_size must be above max_body_bytes so the
    oversized-body check here answers instead of aiohttp itself.
    """
    fallback = fallback or FallbackService()

    async def handle_create_chat(request: web.Request) -> web.Response:
        user_id = authenticate(request)
        if not user_id:
            return _error("Unauthorized", 401)

        payload = await _read_json(request)
        if payload is None:
            return _error("Invalid JSON body", 400)

        title = payload.get("title")
        if not isinstance(title, str) or not title.strip():
            return _error("Title is required", 400)

        mode = payload.get("mode")
        if mode is not None and not isinstance(mode, str):
            return _error("Mode must be a string", 400)

        chat = store.create_chat(user_id, title.strip(), mode)
        return web.json_response({"chat": chat.to_dict()})

    async def handle_list_chats(request: web.Request) -> web.Response:
        user_id = authenticate(request)
        if not user_id:
            return _error("Unauthorized", 401)

        chats = store.list_chats(user_id)
        return web.json_response({"chats": [chat.to_dict() for chat in chats]})

    async def handle_get_chat(request: web.Request) -> web.Response:
        user_id = authenticate(request)
        if not user_id:
            return _error("Unauthorized", 401)

        try:
            chat = store.get_chat(user_id, request.match_info["chat_id"])
        except ChatNotFoundError:
            return _error("Chat not found", 404)
        return web.json_response({"chat": chat.to_dict()})

    async def handle_update_chat(request: web.Request) -> web.Response:
        user_id = authenticate(request)
        if not user_id:
            return _error("Unauthorized", 401)

        payload = await _read_json(request)
        if payload is None:
            return _error("Invalid JSON body", 400)

        changes: Dict[str, Any] = {}
        if "title" in payload:
            title = payload["title"]
            if not isinstance(title, str) or not title.strip():
                return _error("Title must be a non-empty string", 400)
            changes["title"] = title.strip()
        if "mode" in payload:
            mode = payload["mode"]
            if mode is not None and not isinstance(mode, str):
                return _error("Mode must be a string or null", 400)
            changes["mode"] = mode
        if "isFavorite" in payload:
            if not isinstance(payload["isFavorite"], bool):
                return _error("isFavorite must be a boolean", 400)
            changes["is_favorite"] = payload["isFavorite"]

        if not changes:
            return _error("No updatable fields", 400)

        try:
            chat = store.update_chat(
                user_id,
                request.match_info["chat_id"],
                title=changes.get("title", UNSET),
                mode=changes.get("mode", UNSET),
                is_favorite=changes.get("is_favorite", UNSET),
            )
        except ChatNotFoundError:
            return _error("Chat not found", 404)
        return web.json_response({"chat": chat.to_dict()})

    async def handle_delete_chat(request: web.Request) -> web.Response:
        user_id = authenticate(request)
        if not user_id:
            return _error("Unauthorized", 401)

        try:
            store.delete_chat(user_id, request.match_info["chat_id"])
        except ChatNotFoundError:
            return _error("Chat not found", 404)
        return web.json_response({"success": True})

    async def handle_chat(request: web.Request) -> web.Response:
        declared = request.content_length
        if declared is not None and declared > max_body_bytes:
            return _error("Request body too large", 413, limit=max_body_bytes)

        body = await request.read()
        if len(body) > max_body_bytes:
            return _error("Request body too large", 413, limit=max_body_bytes)

        user_id = authenticate(request)
        if not user_id:
            return _error("Unauthorized", 401)

        try:
            payload = json.loads(body.decode("utf-8")) if body else None
        except (json.JSONDecodeError, UnicodeDecodeError):
            payload = None
        if not isinstance(payload, dict):
            return _error("Invalid JSON body", 400)

        message = payload.get("message")
        chat_id = payload.get("chatId")
        mode = payload.get("mode")
        if not isinstance(message, str) or not message.strip():
            return _error("Message is required", 400)
        if not isinstance(chat_id, str) or not chat_id:
            return _error("Chat ID is required", 400)
        if mode is not None and not isinstance(mode, str):
            return _error("Mode must be a string", 400)
        if payload.get("deepSearch"):
            logger.info(f"Deep search requested for chat {chat_id}; answering with standard generation")

        try:
            user_message = store.add_message(user_id, chat_id, Role.USER, message)
        except ChatNotFoundError:
            return _error("Chat not found", 404)

        prompt = build_prompt(message, mode)
        degraded = False
        try:
            with log_execution_time(logger, "generation", chat_id=chat_id):
                result = await generation_client.generate(prompt)
            text = result.text
        except Exception as e:
            if not fallback.is_degradable(e):
                logger.error(f"Generation failed for chat {chat_id}: {e}", exc_info=True)
                return _error("Failed to generate response", 500)
            text = fallback.degraded_message_for(e)
            degraded = True

        try:
            reply = store.add_message(user_id, chat_id, Role.ASSISTANT, text)
        except ChatNotFoundError:
            # Deleted while generating
            return _error("Chat not found", 404)

        response: Dict[str, Any] = {
            "response": reply.content,
            "messageId": reply.id,
            "userMessageId": user_message.id,
        }
        if degraded:
            response["degraded"] = True
        return web.json_response(response)

    app.router.add_post("/chats", handle_create_chat)
    app.router.add_get("/chats", handle_list_chats)
    app.router.add_get("/chats/{chat_id}", handle_get_chat)
    app.router.add_patch("/chats/{chat_id}", handle_update_chat)
    app.router.add_delete("/chats/{chat_id}", handle_delete_chat)
    app.router.add_post("/chat", handle_chat)
