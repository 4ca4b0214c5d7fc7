"""Domain models for chat transport."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional, Tuple


@dataclass(frozen=True, slots=True)
class ConversationKey:
	"""Canonical representation of a 1:1 chat conversation."""

	user_a: str
	user_b: str

	@classmethod
	def from_participants(cls, user_one: str, user_two: str) -> "ConversationKey":
		ordered = tuple(sorted((str(user_one), str(user_two))))
		return cls(user_a=ordered[0], user_b=ordered[1])

	@property
	def conversation_id(self) -> str:
		return f"chat:{self.user_a}:{self.user_b}"

	def participants(self) -> Tuple[str, str]:
		return (self.user_a, self.user_b)

	def partner_of(self, user_id: str) -> str:
		return self.user_b if user_id == self.user_a else self.user_a


@dataclass(frozen=True, slots=True)
class ChatMessage:
	"""A persisted message. `message_id` is assigned once by storage."""

	message_id: str
	from_user_id: str
	text: str
	created_at: datetime
	to_user_id: Optional[str] = None
	group_id: Optional[str] = None
	author_name: Optional[str] = None
	author_photo: Optional[str] = None

	@property
	def is_group(self) -> bool:
		return self.group_id is not None

	def conversation_key(self) -> Optional[ConversationKey]:
		if self.to_user_id is None:
			return None
		return ConversationKey.from_participants(self.from_user_id, self.to_user_id)

	def to_dict(self) -> dict:
		return {
			"message_id": self.message_id,
			"from_user_id": self.from_user_id,
			"to_user_id": self.to_user_id,
			"group_id": self.group_id,
			"text": self.text,
			"created_at": self.created_at.isoformat(),
			"author_name": self.author_name,
			"author_photo": self.author_photo,
		}


@dataclass(frozen=True, slots=True)
class NewMessage:
	"""A validated message that has not been persisted yet."""

	from_user_id: str
	text: str
	created_at: datetime
	to_user_id: Optional[str] = None
	group_id: Optional[str] = None
	author_name: Optional[str] = None
	author_photo: Optional[str] = None


@dataclass(slots=True)
class ChatGroup:
	"""A meetup chat: host plus accepted attendees."""

	group_id: str
	title: Optional[str] = None
	members: frozenset[str] = field(default_factory=frozenset)

	def is_member(self, user_id: str) -> bool:
		return user_id in self.members


@dataclass(slots=True)
class ConversationSummary:
	kind: Literal["direct", "group"]
	last_message: ChatMessage
	unread_count: int = 0
	partner_id: Optional[str] = None
	group_id: Optional[str] = None
	title: Optional[str] = None
	partner_name: Optional[str] = None
	partner_photo: Optional[str] = None
