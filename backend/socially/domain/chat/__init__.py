"""Chat domain exports."""

from .dispatcher import MessageDispatcher
from .keepalive import KeepaliveSupervisor
from .presence import Connection, ConnectionState, PresenceRegistry
from .repo import ChatRepository, InMemoryChatStore, PostgresChatRepository

__all__ = [
	"ChatRepository",
	"Connection",
	"ConnectionState",
	"InMemoryChatStore",
	"KeepaliveSupervisor",
	"MessageDispatcher",
	"PostgresChatRepository",
	"PresenceRegistry",
]
