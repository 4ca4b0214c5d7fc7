"""Message send, fan-out and read receipts."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Protocol, Tuple, TypeVar

from socially.infra import rate_limit
from socially.obs import metrics as obs_metrics

from .exceptions import ChatError, NotFoundError, StorageError, TransientDeliveryError, ValidationError
from .models import ChatGroup, ChatMessage, ConversationSummary, NewMessage
from .presence import Connection, PresenceRegistry
from .repo import ChatRepository

logger = logging.getLogger(__name__)

MESSAGE_EVENT = "chat:message"

T = TypeVar("T")


class AuthorLookup(Protocol):
	async def identity(self, user_id: str) -> Tuple[Optional[str], Optional[str]]:
		"""Return `(display_name, photo_url)` for a user."""
		...


def _now() -> datetime:
	return datetime.now(timezone.utc)


def _clean_id(value: Optional[str]) -> Optional[str]:
	if value is None:
		return None
	text = str(value).strip()
	return text or None


class MessageDispatcher:
	"""Persists messages, then pushes them to every live connection of the audience."""

	def __init__(
		self,
		repository: ChatRepository,
		registry: PresenceRegistry,
		*,
		authors: Optional[AuthorLookup] = None,
		echo_to_sender: bool = True,
		max_length: int = 4000,
		storage_timeout: float = 5.0,
		send_rate_limit: int = 0,
		clock: Callable[[], datetime] = _now,
	) -> None:
		self.repository = repository
		self.registry = registry
		self.authors = authors
		self.echo_to_sender = echo_to_sender
		self.max_length = max_length
		self.storage_timeout = storage_timeout
		self.send_rate_limit = send_rate_limit
		self._clock = clock

	async def _storage(self, operation: str, awaitable: Awaitable[T]) -> T:
		try:
			return await asyncio.wait_for(awaitable, timeout=self.storage_timeout)
		except asyncio.TimeoutError:
			logger.warning("chat storage timeout op=%s", operation)
			raise StorageError("storage_timeout") from None
		except ChatError:
			raise
		except Exception as exc:
			logger.error("chat storage failure op=%s", operation, exc_info=exc)
			raise StorageError() from exc

	def _reject(self, reason: str) -> ValidationError:
		obs_metrics.inc_chat_reject(reason)
		return ValidationError(reason)

	async def send_message(
		self,
		from_user_id: str,
		text: str,
		to_user_id: Optional[str] = None,
		group_id: Optional[str] = None,
		*,
		origin_handle: Optional[str] = None,
	) -> ChatMessage:
		sender = _clean_id(from_user_id)
		recipient = _clean_id(to_user_id)
		group = _clean_id(group_id)
		body = (text or "").strip()
		if sender is None:
			raise self._reject("missing_sender")
		if not body:
			raise self._reject("empty_text")
		if len(body) > self.max_length:
			raise self._reject("text_too_long")
		if (recipient is None) == (group is None):
			raise self._reject("ambiguous_target")
		if recipient is not None and recipient == sender:
			raise self._reject("self_message")

		if self.send_rate_limit > 0:
			try:
				await rate_limit.enforce("chat_send", sender, limit=self.send_rate_limit)
			except rate_limit.RateLimitExceeded:
				obs_metrics.inc_chat_reject("rate_limited")
				raise

		audience: List[str]
		author_name: Optional[str] = None
		author_photo: Optional[str] = None
		if group is not None:
			chat_group = await self._storage("get_group", self.repository.get_group(group))
			if chat_group is None or not chat_group.is_member(sender):
				obs_metrics.inc_chat_reject("group_not_found")
				raise NotFoundError("group_not_found")
			audience = sorted(chat_group.members)
			if self.authors is not None:
				author_name, author_photo = await self._storage("author_lookup", self.authors.identity(sender))
		else:
			audience = [str(recipient)]

		draft = NewMessage(
			from_user_id=sender,
			to_user_id=recipient,
			group_id=group,
			text=body,
			created_at=self._clock(),
			author_name=author_name,
			author_photo=author_photo,
		)
		message = await self._storage("create_message", self.repository.create_message(draft))
		obs_metrics.inc_chat_send("group" if message.is_group else "direct")
		logger.info(
			"chat message stored id=%s from=%s kind=%s",
			message.message_id,
			message.from_user_id,
			"group" if message.is_group else "direct",
		)
		if self.echo_to_sender and sender not in audience:
			audience.append(sender)
		await self.fan_out(
			message,
			audience,
			exclude_user=None if self.echo_to_sender else sender,
			exclude_handle=origin_handle,
		)
		return message

	async def fan_out(
		self,
		message: ChatMessage,
		user_ids: Iterable[str],
		*,
		exclude_user: Optional[str] = None,
		exclude_handle: Optional[str] = None,
	) -> int:
		"""Enqueue `message` once per live connection of `user_ids`. Returns the number queued."""
		targets: Dict[str, Connection] = {}
		for user_id in dict.fromkeys(user_ids):
			if user_id == exclude_user:
				continue
			for connection in await self.registry.connections_for(user_id):
				if connection.handle != exclude_handle:
					targets.setdefault(connection.handle, connection)
		payload = message.to_dict()
		delivered = 0
		for connection in targets.values():
			try:
				connection.enqueue(MESSAGE_EVENT, payload)
			except TransientDeliveryError as exc:
				logger.warning(
					"chat fan-out dropped handle=%s user=%s reason=%s",
					exc.handle,
					connection.user_id,
					exc.reason,
				)
				obs_metrics.inc_chat_fanout("dropped")
				await connection.close(reason=exc.reason)
				continue
			obs_metrics.inc_chat_fanout("queued")
			delivered += 1
		return delivered

	async def mark_read(self, user_id: str, partner_user_id: str) -> datetime:
		reader = _clean_id(user_id)
		partner = _clean_id(partner_user_id)
		if reader is None or partner is None:
			raise ValidationError("missing_user_id")
		read_at = self._clock()
		await self._storage("mark_read", self.repository.mark_read(reader, partner, read_at))
		obs_metrics.inc_chat_read()
		return read_at

	async def history(self, user_id: str, partner_user_id: str) -> List[ChatMessage]:
		reader = _clean_id(user_id)
		partner = _clean_id(partner_user_id)
		if reader is None or partner is None:
			raise ValidationError("missing_user_id")
		return await self._storage("get_history", self.repository.get_history(reader, partner))

	async def group_history(self, user_id: str, group_id: str) -> List[ChatMessage]:
		group = await self._storage("get_group", self.repository.get_group(group_id))
		if group is None or not group.is_member(user_id):
			raise NotFoundError("group_not_found")
		return await self._storage("get_group_history", self.repository.get_group_history(group_id))

	async def set_group(
		self,
		user_id: str,
		group_id: str,
		members: Iterable[str],
		title: Optional[str] = None,
	) -> ChatGroup:
		"""Create or replace a meetup chat roster. The caller is always kept as a member.

		Only a current member may change an existing group; anyone else gets `group_not_found`.
		"""
		owner = _clean_id(user_id)
		group_key = _clean_id(group_id)
		if owner is None or group_key is None:
			raise ValidationError("missing_user_id" if owner is None else "missing_group_id")
		roster = {cleaned for cleaned in (_clean_id(member) for member in members) if cleaned}
		roster.add(owner)
		existing = await self._storage("get_group", self.repository.get_group(group_key))
		if existing is not None and not existing.is_member(owner):
			raise NotFoundError("group_not_found")
		group = ChatGroup(group_id=group_key, title=(title or "").strip() or None, members=frozenset(roster))
		await self._storage("upsert_group", self.repository.upsert_group(group))
		logger.info("chat group saved id=%s members=%d", group.group_id, len(group.members))
		return group

	async def unread_count(self, user_id: str) -> int:
		return await self._storage("get_unread_count", self.repository.get_unread_count(user_id))

	async def inbox(self, user_id: str) -> List[ConversationSummary]:
		summaries = await self._storage("list_conversations", self.repository.list_conversations(user_id))
		if self.authors is not None:
			for summary in summaries:
				if summary.partner_id is not None:
					summary.partner_name, summary.partner_photo = await self._storage(
						"author_lookup", self.authors.identity(summary.partner_id)
					)
		return summaries
