"""
Acting-user resolution.

Credentials and sessions are issued upstream; by the time a request reaches
this service the authenticated user id travels in the `x-user-id` header.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from persistence.database import get_session
from persistence.models import User
from persistence.repository import UserRepository

USER_ID_HEADER = "x-user-id"


class AuthError(HTTPException):
    def __init__(self, status_code: int, error_code: str, details: str) -> None:
        super().__init__(status_code=status_code, detail={"error": error_code, "details": details})


def get_current_user(request: Request, db: Session = Depends(get_session)) -> User:
    raw_user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
    if not raw_user_id.isdigit():
        raise AuthError(401, "user_required", f"A numeric {USER_ID_HEADER} header is required.")

    user = UserRepository(db).get_user(int(raw_user_id))
    if user is None:
        raise AuthError(401, "user_required", "Unknown user.")
    if not user.is_active:
        raise AuthError(403, "user_inactive", "User account is inactive.")
    return user
