# app/dependencies.py
"""
Request identity.

Authentication happens upstream (gateway / API key middleware); the caller's
identity arrives in trusted headers:
    X-User-Id    — required on user-scoped endpoints
    X-User-Role  — "admin" unlocks parking-space management and /admin/*
"""

from dataclasses import dataclass
from typing import Optional
from fastapi import Header, HTTPException, status, Depends

ADMIN_ROLE = "admin"


@dataclass
class CurrentUser:
    user_id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> CurrentUser:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return CurrentUser(user_id=x_user_id.strip(), role=(x_user_role or "user").strip().lower())


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user
