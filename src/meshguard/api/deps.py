from __future__ import annotations

from fastapi import Header, Request

from meshguard.runtime import Runtime

ANONYMOUS_USER = "anonymous"


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def get_user_id(
    user_id: str | None = Header(default=None, convert_underscores=False, alias="X-User-Id"),
) -> str:
    """Acting user for audit entries; callers are not authenticated."""
    return user_id or ANONYMOUS_USER
