"""Caller identity for HTTP endpoints.

Authentication happens upstream; the user identifier supplied by the caller is
trusted as-is.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Query, status


@dataclass(slots=True)
class AuthenticatedUser:
	id: str


def normalise_user_id(raw: object) -> Optional[str]:
	if raw is None:
		return None
	value = str(raw).strip()
	return value or None


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	uid: Optional[str] = Query(default=None),
) -> AuthenticatedUser:
	"""Resolve the caller from the `X-User-Id` header, falling back to `?uid=`."""
	user_id = normalise_user_id(x_user_id) or normalise_user_id(uid)
	if not user_id:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_user_id")
	return AuthenticatedUser(id=user_id)
