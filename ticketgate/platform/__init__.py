"""Platform layer — channel provider and confirmation prompt boundaries."""

from ticketgate.platform.memory import (
    MemoryChannelProvider,
    MemoryPromptResponder,
    ProviderFailure,
)
from ticketgate.platform.provider import (
    ChannelPermissions,
    ChannelProvider,
    ChannelRight,
    HistoryMessage,
    PromptResponder,
)

__all__ = [
    "ChannelPermissions",
    "ChannelProvider",
    "ChannelRight",
    "HistoryMessage",
    "MemoryChannelProvider",
    "MemoryPromptResponder",
    "PromptResponder",
    "ProviderFailure",
]
