"""In-process channel provider.

Used for local runs without a chat platform and throughout the test suite.
Keeps channels and their messages in dicts, records every deletion so tests
can assert exactly-once semantics, and can be told to fail specific calls.
"""

from __future__ import annotations

import asyncio
import itertools
import time

from ticketgate.platform.provider import (
    ChannelPermissions,
    ChannelProvider,
    HistoryMessage,
    PromptResponder,
)


class ProviderFailure(RuntimeError):
    """Raised by MemoryChannelProvider when a simulated failure is armed."""


class MemoryChannelProvider(ChannelProvider):
    def __init__(self, bot_id: str = "ticketgate") -> None:
        self.bot_id = bot_id
        self.channels: dict[str, dict[str, object]] = {}
        self.messages: dict[str, list[HistoryMessage]] = {}
        self.deleted: list[str] = []
        self._fail: set[str] = set()
        self._ids = itertools.count(1000)
        self._lock = asyncio.Lock()

    def fail_on(self, *operations: str) -> None:
        """Make the named operations raise ``ProviderFailure`` until cleared."""
        self._fail.update(operations)

    def clear_failures(self) -> None:
        self._fail.clear()

    def _check(self, operation: str) -> None:
        if operation in self._fail:
            raise ProviderFailure(f"simulated {operation} failure")

    async def create_channel(
        self, parent_category: str, name: str, permissions: ChannelPermissions
    ) -> str:
        self._check("create_channel")
        async with self._lock:
            channel_id = str(next(self._ids))
            self.channels[channel_id] = {
                "name": name,
                "parent": parent_category,
                "permissions": permissions,
            }
            self.messages[channel_id] = []
        return channel_id

    async def delete_channel(self, channel_id: str) -> None:
        self._check("delete_channel")
        async with self._lock:
            if channel_id not in self.channels:
                raise ProviderFailure(f"unknown channel {channel_id}")
            del self.channels[channel_id]
            self.deleted.append(channel_id)

    async def channel_exists(self, channel_id: str) -> bool:
        self._check("channel_exists")
        return channel_id in self.channels

    async def fetch_message_history(self, channel_id: str, limit: int) -> list[HistoryMessage]:
        self._check("fetch_message_history")
        if channel_id not in self.channels:
            raise ProviderFailure(f"unknown channel {channel_id}")
        history = sorted(self.messages.get(channel_id, []), key=lambda m: m.timestamp)
        return history[-limit:]

    async def send_message(self, channel_id: str, content: str, actions: list[str] | None = None) -> None:
        self._check("send_message")
        if channel_id not in self.channels:
            raise ProviderFailure(f"unknown channel {channel_id}")
        self.messages[channel_id].append(
            HistoryMessage(author=self.bot_id, text=content, actions=list(actions or []))
        )

    def post(self, channel_id: str, author: str, text: str, attachments: list[str] | None = None) -> None:
        """Simulate a user message arriving in *channel_id*."""
        self.messages[channel_id].append(
            HistoryMessage(author=author, text=text, timestamp=time.time(), attachments=attachments or [])
        )

    def add_channel(self, channel_id: str, name: str = "") -> None:
        """Simulate a pre-existing public channel, e.g. the products channel."""
        self.channels[channel_id] = {"name": name, "parent": None, "permissions": None}
        self.messages.setdefault(channel_id, [])

    def drop_channel(self, channel_id: str) -> None:
        """Simulate a channel removed outside the bot (no deletion recorded)."""
        self.channels.pop(channel_id, None)


class MemoryPromptResponder(PromptResponder):
    def __init__(self) -> None:
        self.shown: list[tuple[str, list[str]]] = []
        self.updates: list[str] = []
        self.visible = asyncio.Event()

    async def show(self, content: str, actions: list[str]) -> None:
        self.shown.append((content, list(actions)))
        self.visible.set()

    async def update(self, content: str) -> None:
        self.updates.append(content)

    @property
    def last_update(self) -> str | None:
        return self.updates[-1] if self.updates else None
