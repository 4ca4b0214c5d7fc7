"""Chat persistence: an in-memory store and an asyncpg-backed repository."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

import ulid

from .models import ChatGroup, ChatMessage, ConversationKey, ConversationSummary, NewMessage


class ChatRepository(Protocol):
	async def create_message(self, message: NewMessage) -> ChatMessage:
		...

	async def get_history(self, user_a: str, user_b: str) -> List[ChatMessage]:
		...

	async def get_group_history(self, group_id: str) -> List[ChatMessage]:
		...

	async def get_unread_count(self, user_id: str) -> int:
		...

	async def mark_read(self, user_id: str, partner_id: str, read_at: datetime) -> None:
		...

	async def list_conversations(self, user_id: str) -> List[ConversationSummary]:
		...

	async def get_group(self, group_id: str) -> Optional[ChatGroup]:
		...

	async def upsert_group(self, group: ChatGroup) -> None:
		...


def _persisted(message: NewMessage) -> ChatMessage:
	return ChatMessage(
		message_id=str(ulid.new()),
		from_user_id=message.from_user_id,
		to_user_id=message.to_user_id,
		group_id=message.group_id,
		text=message.text,
		created_at=message.created_at,
		author_name=message.author_name,
		author_photo=message.author_photo,
	)


def _by_recency(summaries: Iterable[ConversationSummary]) -> List[ConversationSummary]:
	return sorted(
		summaries,
		key=lambda item: (item.last_message.created_at, item.last_message.message_id),
		reverse=True,
	)


class InMemoryChatStore:
	"""Process-local store used by default and in tests."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._direct: Dict[str, List[ChatMessage]] = {}
		self._groups: Dict[str, List[ChatMessage]] = {}
		self._group_meta: Dict[str, ChatGroup] = {}
		# reader -> partner -> last read timestamp
		self._last_read: Dict[str, Dict[str, datetime]] = {}

	async def upsert_group(self, group: ChatGroup) -> None:
		async with self._lock:
			self._group_meta[group.group_id] = group

	async def create_message(self, message: NewMessage) -> ChatMessage:
		async with self._lock:
			stored = _persisted(message)
			if stored.group_id is not None:
				self._groups.setdefault(stored.group_id, []).append(stored)
			else:
				key = ConversationKey.from_participants(stored.from_user_id, str(stored.to_user_id))
				self._direct.setdefault(key.conversation_id, []).append(stored)
			return stored

	async def get_history(self, user_a: str, user_b: str) -> List[ChatMessage]:
		key = ConversationKey.from_participants(user_a, user_b)
		async with self._lock:
			return list(self._direct.get(key.conversation_id, []))

	async def get_group_history(self, group_id: str) -> List[ChatMessage]:
		async with self._lock:
			return list(self._groups.get(group_id, []))

	def _unread_from(self, user_id: str, partner_id: str, messages: Iterable[ChatMessage]) -> int:
		cutoff = self._last_read.get(user_id, {}).get(partner_id)
		return sum(
			1
			for message in messages
			if message.to_user_id == user_id
			and message.from_user_id == partner_id
			and (cutoff is None or message.created_at > cutoff)
		)

	async def get_unread_count(self, user_id: str) -> int:
		async with self._lock:
			total = 0
			for messages in self._direct.values():
				if not messages:
					continue
				key = messages[0].conversation_key()
				if key is None or user_id not in key.participants():
					continue
				total += self._unread_from(user_id, key.partner_of(user_id), messages)
			return total

	async def mark_read(self, user_id: str, partner_id: str, read_at: datetime) -> None:
		async with self._lock:
			self._last_read.setdefault(user_id, {})[partner_id] = read_at

	async def list_conversations(self, user_id: str) -> List[ConversationSummary]:
		async with self._lock:
			summaries: List[ConversationSummary] = []
			for messages in self._direct.values():
				if not messages:
					continue
				key = messages[0].conversation_key()
				if key is None or user_id not in key.participants():
					continue
				partner_id = key.partner_of(user_id)
				summaries.append(
					ConversationSummary(
						kind="direct",
						partner_id=partner_id,
						last_message=messages[-1],
						unread_count=self._unread_from(user_id, partner_id, messages),
					)
				)
			for group_id, group in self._group_meta.items():
				messages = self._groups.get(group_id)
				if not messages or not group.is_member(user_id):
					continue
				summaries.append(
					ConversationSummary(
						kind="group",
						group_id=group_id,
						title=group.title,
						last_message=messages[-1],
					)
				)
			return _by_recency(summaries)

	async def get_group(self, group_id: str) -> Optional[ChatGroup]:
		async with self._lock:
			return self._group_meta.get(group_id)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS chat_messages (
	message_id TEXT PRIMARY KEY,
	from_user_id TEXT NOT NULL,
	to_user_id TEXT,
	group_id TEXT,
	text TEXT NOT NULL,
	author_name TEXT,
	author_photo TEXT,
	created_at TIMESTAMPTZ NOT NULL,
	CHECK ((to_user_id IS NULL) <> (group_id IS NULL))
);
CREATE INDEX IF NOT EXISTS chat_messages_direct_idx ON chat_messages (from_user_id, to_user_id, created_at);
CREATE INDEX IF NOT EXISTS chat_messages_group_idx ON chat_messages (group_id, created_at);
CREATE TABLE IF NOT EXISTS chat_reads (
	user_id TEXT NOT NULL,
	partner_id TEXT NOT NULL,
	last_read_at TIMESTAMPTZ NOT NULL,
	PRIMARY KEY (user_id, partner_id)
);
CREATE TABLE IF NOT EXISTS chat_groups (
	group_id TEXT PRIMARY KEY,
	title TEXT
);
CREATE TABLE IF NOT EXISTS chat_group_members (
	group_id TEXT NOT NULL REFERENCES chat_groups (group_id) ON DELETE CASCADE,
	user_id TEXT NOT NULL,
	PRIMARY KEY (group_id, user_id)
);
"""

_MESSAGE_COLUMNS = "message_id, from_user_id, to_user_id, group_id, text, author_name, author_photo, created_at"


class PostgresChatRepository:
	"""Repository backed by an asyncpg pool."""

	def __init__(self, pool) -> None:
		self._pool = pool

	async def ensure_schema(self) -> None:
		async with self._pool.acquire() as conn:
			await conn.execute(SCHEMA_SQL)

	@staticmethod
	def _row_to_message(row) -> ChatMessage:
		return ChatMessage(
			message_id=str(row["message_id"]),
			from_user_id=str(row["from_user_id"]),
			to_user_id=str(row["to_user_id"]) if row["to_user_id"] is not None else None,
			group_id=str(row["group_id"]) if row["group_id"] is not None else None,
			text=str(row["text"]),
			author_name=row["author_name"],
			author_photo=row["author_photo"],
			created_at=row["created_at"],
		)

	async def create_message(self, message: NewMessage) -> ChatMessage:
		stored = _persisted(message)
		async with self._pool.acquire() as conn:
			await conn.execute(
				f"""
				INSERT INTO chat_messages ({_MESSAGE_COLUMNS})
				VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
				""",
				stored.message_id,
				stored.from_user_id,
				stored.to_user_id,
				stored.group_id,
				stored.text,
				stored.author_name,
				stored.author_photo,
				stored.created_at,
			)
		return stored

	async def get_history(self, user_a: str, user_b: str) -> List[ChatMessage]:
		async with self._pool.acquire() as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_MESSAGE_COLUMNS}
				FROM chat_messages
				WHERE group_id IS NULL
					AND ((from_user_id = $1 AND to_user_id = $2) OR (from_user_id = $2 AND to_user_id = $1))
				ORDER BY created_at ASC, message_id ASC
				""",
				user_a,
				user_b,
			)
		return [self._row_to_message(row) for row in rows]

	async def get_group_history(self, group_id: str) -> List[ChatMessage]:
		async with self._pool.acquire() as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_MESSAGE_COLUMNS}
				FROM chat_messages
				WHERE group_id = $1
				ORDER BY created_at ASC, message_id ASC
				""",
				group_id,
			)
		return [self._row_to_message(row) for row in rows]

	async def _unread_by_partner(self, conn, user_id: str) -> Dict[str, int]:
		rows = await conn.fetch(
			"""
			SELECT m.from_user_id, COUNT(*) AS unread
			FROM chat_messages m
			LEFT JOIN chat_reads r ON r.user_id = $1 AND r.partner_id = m.from_user_id
			WHERE m.to_user_id = $1 AND (r.last_read_at IS NULL OR m.created_at > r.last_read_at)
			GROUP BY m.from_user_id
			""",
			user_id,
		)
		return {str(row["from_user_id"]): int(row["unread"]) for row in rows}

	async def get_unread_count(self, user_id: str) -> int:
		async with self._pool.acquire() as conn:
			counts = await self._unread_by_partner(conn, user_id)
		return sum(counts.values())

	async def mark_read(self, user_id: str, partner_id: str, read_at: datetime) -> None:
		async with self._pool.acquire() as conn:
			await conn.execute(
				"""
				INSERT INTO chat_reads (user_id, partner_id, last_read_at)
				VALUES ($1, $2, $3)
				ON CONFLICT (user_id, partner_id) DO UPDATE SET last_read_at = EXCLUDED.last_read_at
				""",
				user_id,
				partner_id,
				read_at,
			)

	async def list_conversations(self, user_id: str) -> List[ConversationSummary]:
		async with self._pool.acquire() as conn:
			direct_rows = await conn.fetch(
				f"""
				SELECT DISTINCT ON (partner_id) partner_id, {_MESSAGE_COLUMNS}
				FROM (
					SELECT CASE WHEN from_user_id = $1 THEN to_user_id ELSE from_user_id END AS partner_id, *
					FROM chat_messages
					WHERE group_id IS NULL AND (from_user_id = $1 OR to_user_id = $1)
				) AS mine
				ORDER BY partner_id, created_at DESC, message_id DESC
				""",
				user_id,
			)
			group_rows = await conn.fetch(
				"""
				SELECT DISTINCT ON (m.group_id) g.title, m.message_id, m.from_user_id, m.to_user_id, m.group_id,
					m.text, m.author_name, m.author_photo, m.created_at
				FROM chat_messages m
				JOIN chat_groups g ON g.group_id = m.group_id
				JOIN chat_group_members gm ON gm.group_id = m.group_id AND gm.user_id = $1
				ORDER BY m.group_id, m.created_at DESC, m.message_id DESC
				""",
				user_id,
			)
			unread = await self._unread_by_partner(conn, user_id)
		summaries: List[ConversationSummary] = [
			ConversationSummary(
				kind="direct",
				partner_id=str(row["partner_id"]),
				last_message=self._row_to_message(row),
				unread_count=unread.get(str(row["partner_id"]), 0),
			)
			for row in direct_rows
		]
		summaries.extend(
			ConversationSummary(
				kind="group",
				group_id=str(row["group_id"]),
				title=row["title"],
				last_message=self._row_to_message(row),
			)
			for row in group_rows
		)
		return _by_recency(summaries)

	async def get_group(self, group_id: str) -> Optional[ChatGroup]:
		async with self._pool.acquire() as conn:
			row = await conn.fetchrow("SELECT group_id, title FROM chat_groups WHERE group_id = $1", group_id)
			if not row:
				return None
			members = await conn.fetch("SELECT user_id FROM chat_group_members WHERE group_id = $1", group_id)
		return ChatGroup(
			group_id=str(row["group_id"]),
			title=row["title"],
			members=frozenset(str(member["user_id"]) for member in members),
		)

	async def upsert_group(self, group: ChatGroup) -> None:
		async with self._pool.acquire() as conn:
			async with conn.transaction():
				await conn.execute(
					"""
					INSERT INTO chat_groups (group_id, title) VALUES ($1, $2)
					ON CONFLICT (group_id) DO UPDATE SET title = EXCLUDED.title
					""",
					group.group_id,
					group.title,
				)
				await conn.execute("DELETE FROM chat_group_members WHERE group_id = $1", group.group_id)
				await conn.executemany(
					"INSERT INTO chat_group_members (group_id, user_id) VALUES ($1, $2)",
					[(group.group_id, member) for member in sorted(group.members)],
				)
