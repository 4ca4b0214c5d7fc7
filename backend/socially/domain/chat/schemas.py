"""Pydantic schemas for the chat HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .models import ChatGroup, ChatMessage, ConversationSummary


class SendMessageRequest(BaseModel):
	to_user_id: Optional[str] = Field(default=None, description="Recipient of a direct message")
	group_id: Optional[str] = Field(default=None, description="Meetup chat identifier")
	text: str = Field(..., description="Message body; surrounding whitespace is trimmed")


class GroupMembersRequest(BaseModel):
	title: Optional[str] = Field(default=None, max_length=120)
	members: List[str] = Field(default_factory=list, description="Host and accepted attendees")


class ChatGroupResponse(BaseModel):
	group_id: str
	title: Optional[str] = None
	members: List[str]

	@classmethod
	def from_model(cls, group: ChatGroup) -> "ChatGroupResponse":
		return cls(group_id=group.group_id, title=group.title, members=sorted(group.members))


class MessageResponse(BaseModel):
	message_id: str
	from_user_id: str
	to_user_id: Optional[str] = None
	group_id: Optional[str] = None
	text: str
	created_at: datetime
	author_name: Optional[str] = None
	author_photo: Optional[str] = None

	@classmethod
	def from_model(cls, message: ChatMessage) -> "MessageResponse":
		return cls(
			message_id=message.message_id,
			from_user_id=message.from_user_id,
			to_user_id=message.to_user_id,
			group_id=message.group_id,
			text=message.text,
			created_at=message.created_at,
			author_name=message.author_name,
			author_photo=message.author_photo,
		)


class MessageListResponse(BaseModel):
	items: List[MessageResponse]


class ConversationSummaryResponse(BaseModel):
	kind: Literal["direct", "group"]
	partner_id: Optional[str] = None
	group_id: Optional[str] = None
	title: Optional[str] = None
	partner_name: Optional[str] = None
	partner_photo: Optional[str] = None
	last_message: MessageResponse
	unread_count: int = 0

	@classmethod
	def from_model(cls, summary: ConversationSummary) -> "ConversationSummaryResponse":
		return cls(
			kind=summary.kind,
			partner_id=summary.partner_id,
			group_id=summary.group_id,
			title=summary.title,
			partner_name=summary.partner_name,
			partner_photo=summary.partner_photo,
			last_message=MessageResponse.from_model(summary.last_message),
			unread_count=summary.unread_count,
		)


class InboxResponse(BaseModel):
	items: List[ConversationSummaryResponse]


class ReadReceiptResponse(BaseModel):
	partner_id: str
	read_at: datetime


class UnreadCountResponse(BaseModel):
	count: int
