"""
Response delivery - reveals an already complete reply in small random chunks to emulate streaming.

Only one reveal runs at a time; starting another cancels the previous one.
Stopping keeps whatever prefix was already revealed. Stored message content
is never touched here, only the visible prefix tracked per message id.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Dict, Optional

from cortex_chat.infrastructure.monitoring.logging_service import get_logger


class RevealHandle:
    """Cancellable handle on a running reveal"""

    def __init__(self, message_id: str, task: asyncio.Task):
        self.message_id = message_id
        self._task = task

    def cancel(self) -> None:
        self._task.cancel()

    def done(self) -> bool:
        return self._task.done()

    async def wait(self) -> None:
        """Wait until the reveal completes or is cancelled"""
        await asyncio.wait({self._task})


class ResponseDeliverySimulator:
    """Tick-based typewriter effect over complete text"""

    def __init__(
        self,
        tick_interval: float = 0.02,
        min_chunk: int = 1,
        max_chunk: int = 3,
        rng: Optional[random.Random] = None,
        on_update: Optional[Callable[[str, str], None]] = None,
        on_complete: Optional[Callable[[str], None]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None
    ):
        if min_chunk < 1 or max_chunk < min_chunk:
            raise ValueError("Chunk sizes must satisfy 1 <= min_chunk <= max_chunk")

        self.tick_interval = tick_interval
        self.min_chunk = min_chunk
        self.max_chunk = max_chunk
        self.rng = rng or random.Random()
        self.on_update = on_update
        self.on_complete = on_complete
        self._sleep = sleep or asyncio.sleep

        self.streaming_message_id: Optional[str] = None
        self._visible: Dict[str, str] = {}
        self._handle: Optional[RevealHandle] = None
        self.logger = get_logger(__name__)

    @property
    def is_streaming(self) -> bool:
        return self.streaming_message_id is not None

    def visible_text(self, message_id: str) -> Optional[str]:
        """Revealed prefix for a message that is streaming or was stopped, else None"""
        return self._visible.get(message_id)

    def reveal(self, full_text: str, message_id: str) -> RevealHandle:
        """Start revealing full_text for message_id; must be called from a running event loop"""
        self.stop()

        self._visible[message_id] = ""
        self.streaming_message_id = message_id

        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(full_text, message_id))
        self._handle = RevealHandle(message_id, task)
        return self._handle

    def stop(self) -> None:
        """Cancel the active reveal, keeping the revealed prefix"""
        if self._handle is not None and not self._handle.done():
            self.logger.debug(f"Stopping reveal of message {self._handle.message_id}")
            self._handle.cancel()
        self._handle = None
        self.streaming_message_id = None

    async def wait_idle(self) -> None:
        """Wait for the active reveal, if any, to complete or be cancelled"""
        if self._handle is not None:
            await self._handle.wait()

    def forget(self, message_id: Optional[str] = None) -> None:
        """Drop tracked prefixes (all of them when no id is given)"""
        if message_id is None:
            self.stop()
            self._visible.clear()
            return
        if self.streaming_message_id == message_id:
            self.stop()
        self._visible.pop(message_id, None)

    async def _run(self, full_text: str, message_id: str) -> None:
        revealed = 0
        total = len(full_text)

        while revealed < total:
            await self._sleep(self.tick_interval)
            revealed = min(total, revealed + self.rng.randint(self.min_chunk, self.max_chunk))
            self._visible[message_id] = full_text[:revealed]
            self._notify(self.on_update, message_id, full_text[:revealed])

        self._visible.pop(message_id, None)
        if self.streaming_message_id == message_id:
            self.streaming_message_id = None
        self._notify(self.on_complete, message_id)

    def _notify(self, callback: Optional[Callable[..., None]], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            self.logger.error(f"Response delivery callback failed: {e}", exc_info=True)
