"""Platform layer — Chat platform collaborator boundary.

The core never imports a chat SDK.  It needs exactly two capabilities from
the platform, both defined here as abstract classes:

``ChannelProvider``
    Private channel lifecycle plus message history for transcripts.

``PromptResponder``
    Shows the two-action purchase confirmation prompt and rewrites it with
    the outcome once the gate resolves.

Implementations must treat every call as bounded-latency and raise on
failure; the core reports those failures and never retries them silently.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class ChannelRight(str, Enum):
    VIEW = "view_channel"
    SEND = "send_messages"
    READ_HISTORY = "read_message_history"
    ATTACH_FILES = "attach_files"
    EMBED_LINKS = "embed_links"
    MANAGE_MESSAGES = "manage_messages"


_OWNER_RIGHTS = frozenset(
    {
        ChannelRight.VIEW,
        ChannelRight.SEND,
        ChannelRight.READ_HISTORY,
        ChannelRight.ATTACH_FILES,
        ChannelRight.EMBED_LINKS,
    }
)
_BOT_RIGHTS = frozenset(
    {
        ChannelRight.VIEW,
        ChannelRight.SEND,
        ChannelRight.MANAGE_MESSAGES,
        ChannelRight.EMBED_LINKS,
        ChannelRight.ATTACH_FILES,
    }
)


@dataclass(frozen=True)
class ChannelPermissions:
    """Permission overwrites for a private ticket channel.

    Everyone else is denied ``VIEW``; only the owner and the bot are allowed in.
    """

    owner_id: str
    bot_id: str
    owner_allow: frozenset[ChannelRight] = _OWNER_RIGHTS
    bot_allow: frozenset[ChannelRight] = _BOT_RIGHTS
    everyone_deny: frozenset[ChannelRight] = frozenset({ChannelRight.VIEW})

    @classmethod
    def private_ticket(cls, owner_id: str, bot_id: str) -> "ChannelPermissions":
        return cls(owner_id=owner_id, bot_id=bot_id)

    def can_view(self, user_id: str) -> bool:
        if user_id == self.owner_id:
            return ChannelRight.VIEW in self.owner_allow
        if user_id == self.bot_id:
            return ChannelRight.VIEW in self.bot_allow
        return ChannelRight.VIEW not in self.everyone_deny


@dataclass
class HistoryMessage:
    author: str
    text: str
    timestamp: float = field(default_factory=time.time)
    attachments: list[str] = field(default_factory=list)
    embeds: list[str] = field(default_factory=list)
    actions: list[str] = field(default_factory=list)


class ChannelProvider(ABC):
    @abstractmethod
    async def create_channel(
        self, parent_category: str, name: str, permissions: ChannelPermissions
    ) -> str:
        """Create a private text channel under *parent_category* and return its ID."""

    @abstractmethod
    async def delete_channel(self, channel_id: str) -> None: ...

    @abstractmethod
    async def channel_exists(self, channel_id: str) -> bool: ...

    @abstractmethod
    async def fetch_message_history(self, channel_id: str, limit: int) -> list[HistoryMessage]:
        """Return up to *limit* most recent messages, oldest first."""

    @abstractmethod
    async def send_message(self, channel_id: str, content: str, actions: list[str] | None = None) -> None:
        """Post *content*, with one button per entry in *actions* when given."""


class PromptResponder(ABC):
    """Where a confirmation prompt lives.  One instance per prompt."""

    @abstractmethod
    async def show(self, content: str, actions: list[str]) -> None:
        """Display *content* with one button per entry in *actions*."""

    @abstractmethod
    async def update(self, content: str) -> None:
        """Replace the prompt with *content* and remove the buttons."""
