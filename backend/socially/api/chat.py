"""FastAPI endpoints for chat history, sends and read receipts."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from socially.api.deps import get_dispatcher
from socially.domain.chat import MessageDispatcher
from socially.domain.chat.schemas import (
	ChatGroupResponse,
	ConversationSummaryResponse,
	GroupMembersRequest,
	InboxResponse,
	MessageListResponse,
	MessageResponse,
	ReadReceiptResponse,
	SendMessageRequest,
	UnreadCountResponse,
)
from socially.infra.identity import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message_endpoint(
	payload: SendMessageRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	dispatcher: MessageDispatcher = Depends(get_dispatcher),
) -> MessageResponse:
	message = await dispatcher.send_message(
		auth_user.id,
		payload.text,
		to_user_id=payload.to_user_id,
		group_id=payload.group_id,
	)
	return MessageResponse.from_model(message)


@router.get("/conversations/{partner_id}/messages", response_model=MessageListResponse)
async def history_endpoint(
	partner_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	dispatcher: MessageDispatcher = Depends(get_dispatcher),
) -> MessageListResponse:
	messages = await dispatcher.history(auth_user.id, partner_id)
	return MessageListResponse(items=[MessageResponse.from_model(message) for message in messages])


@router.put("/groups/{group_id}", response_model=ChatGroupResponse)
async def set_group_endpoint(
	group_id: str,
	payload: GroupMembersRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	dispatcher: MessageDispatcher = Depends(get_dispatcher),
) -> ChatGroupResponse:
	group = await dispatcher.set_group(auth_user.id, group_id, payload.members, title=payload.title)
	return ChatGroupResponse.from_model(group)


@router.get("/groups/{group_id}/messages", response_model=MessageListResponse)
async def group_history_endpoint(
	group_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	dispatcher: MessageDispatcher = Depends(get_dispatcher),
) -> MessageListResponse:
	messages = await dispatcher.group_history(auth_user.id, group_id)
	return MessageListResponse(items=[MessageResponse.from_model(message) for message in messages])


@router.get("/inbox", response_model=InboxResponse)
async def inbox_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	dispatcher: MessageDispatcher = Depends(get_dispatcher),
) -> InboxResponse:
	summaries = await dispatcher.inbox(auth_user.id)
	return InboxResponse(items=[ConversationSummaryResponse.from_model(summary) for summary in summaries])


@router.post("/conversations/{partner_id}/read", response_model=ReadReceiptResponse)
async def mark_read_endpoint(
	partner_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	dispatcher: MessageDispatcher = Depends(get_dispatcher),
) -> ReadReceiptResponse:
	read_at = await dispatcher.mark_read(auth_user.id, partner_id)
	return ReadReceiptResponse(partner_id=partner_id, read_at=read_at)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	dispatcher: MessageDispatcher = Depends(get_dispatcher),
) -> UnreadCountResponse:
	return UnreadCountResponse(count=await dispatcher.unread_count(auth_user.id))
