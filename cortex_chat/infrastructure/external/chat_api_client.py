"""
REST client for the chat persistence and generation endpoints.

Every failure surfaces as ApiError: HTTP errors carry their status, network
errors and timeouts carry status None, and a successful response with an
unexpected payload carries the response status.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from cortex_chat.infrastructure.monitoring.logging_service import get_logger
from cortex_chat.services.chat_service.models import Chat


class ApiError(Exception):
    """Failed call to the chat API"""

    def __init__(self, status: Optional[int], message: str):
        super().__init__(message)
        self.status = status
        self.message = message

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{self.status}: {self.message}"


@dataclass
class ChatReply:
    text: str
    message_id: str
    degraded: bool = False
    user_message_id: Optional[str] = None


class ChatApiClient:
    """Async client for /chats and /chat"""

    def __init__(self, base_url: str, api_token: Optional[str] = None, timeout: float = 30.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self.logger = get_logger(__name__)

    async def __aenter__(self) -> 'ChatApiClient':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        session = self._get_session()

        try:
            async with session.request(method, url, json=payload, headers=self._headers()) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = None

                if response.status >= 400:
                    message = data.get("error") if isinstance(data, dict) else None
                    raise ApiError(response.status, message or response.reason or "Request failed")

                if not isinstance(data, dict):
                    raise ApiError(response.status, f"Malformed response from {method} {path}")

                return data

        except ApiError:
            raise
        except asyncio.TimeoutError:
            raise ApiError(None, f"Request timed out: {method} {path}")
        except aiohttp.ClientError as e:
            raise ApiError(None, f"Network error on {method} {path}: {e}")

    @staticmethod
    def _parse_chat(data: Dict[str, Any], status: int = 200) -> Chat:
        try:
            return Chat.from_dict(data["chat"])
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ApiError(status, f"Malformed chat payload: {e}")

    async def create_chat(self, title: str, mode: Optional[str] = None) -> Chat:
        data = await self._request("POST", "/chats", {"title": title, "mode": mode})
        return self._parse_chat(data)

    async def list_chats(self) -> List[Chat]:
        data = await self._request("GET", "/chats")
        try:
            return [Chat.from_dict(item) for item in data["chats"]]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ApiError(200, f"Malformed chat list payload: {e}")

    async def get_chat(self, chat_id: str) -> Chat:
        data = await self._request("GET", f"/chats/{chat_id}")
        return self._parse_chat(data)

    async def update_chat(self, chat_id: str, title: Optional[str] = None, mode: Optional[str] = None,
                          is_favorite: Optional[bool] = None, clear_mode: bool = False) -> Chat:
        payload: Dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        if mode is not None or clear_mode:
            payload["mode"] = mode
        if is_favorite is not None:
            payload["isFavorite"] = is_favorite

        data = await self._request("PATCH", f"/chats/{chat_id}", payload)
        return self._parse_chat(data)

    async def delete_chat(self, chat_id: str) -> None:
        await self._request("DELETE", f"/chats/{chat_id}")

    async def send_message(self, chat_id: str, message: str, mode: Optional[str] = None,
                           deep_search: bool = False) -> ChatReply:
        payload = {"message": message, "mode": mode, "chatId": chat_id, "deepSearch": deep_search}
        data = await self._request("POST", "/chat", payload)

        response = data.get("response")
        message_id = data.get("messageId")
        if not isinstance(response, str) or not message_id:
            raise ApiError(200, "Malformed generation payload")

        user_message_id = data.get("userMessageId")
        return ChatReply(
            text=response,
            message_id=str(message_id),
            degraded=bool(data.get("degraded", False)),
            user_message_id=str(user_message_id) if user_message_id else None,
        )
