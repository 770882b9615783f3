"""
Caller identity for the matching API.
The identity collaborator in front of this service authenticates the user and
forwards the id in X-User-Id; a missing header is rejected with 401.
"""
from __future__ import annotations

from fastapi import Header, HTTPException, status


def require_user_id(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"status": "error", "message": "auth_required"},
        )
    return user_id
