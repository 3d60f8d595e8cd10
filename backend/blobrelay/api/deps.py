"""FastAPI dependency injection — caller identity."""

from __future__ import annotations

from fastapi import Header, HTTPException, status


async def get_owner_id(x_owner_id: str | None = Header(default=None)) -> str:
    """Identity of the caller, set upstream by the authentication layer."""
    if not x_owner_id or not x_owner_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Owner-Id header",
        )
    return x_owner_id.strip()
