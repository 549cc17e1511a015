from __future__ import annotations

from fastapi import Header, HTTPException, Request


async def require_api_token(
    request: Request,
    x_api_token: str | None = Header(default=None, alias="X-Api-Token"),
) -> None:
    expected = request.app.state.settings.api_token
    if not expected:
        return
    if not x_api_token or x_api_token != expected:
        raise HTTPException(status_code=401, detail="Invalid API token")
