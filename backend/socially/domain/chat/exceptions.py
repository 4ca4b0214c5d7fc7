"""Errors raised by the chat delivery core."""

from __future__ import annotations

from fastapi import status

class ChatError(Exception):
	"""Base class for chat errors surfaced to callers."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "chat_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class ValidationError(ChatError):
	"""Empty text, missing identifier, or an ambiguous target."""

	status_code = 422
	detail = "validation_error"


class NotFoundError(ChatError):
	"""No such conversation, group or user, or not visible to the caller."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class StorageError(ChatError):
	"""Persistence failed or timed out; the send did not happen."""

	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	detail = "storage_unavailable"


class TransientDeliveryError(Exception):
	"""A write to one live connection failed. Never surfaced to the sender."""

	def __init__(self, handle: str, reason: str) -> None:
		super().__init__(f"delivery to {handle} failed: {reason}")
		self.handle = handle
		self.reason = reason
