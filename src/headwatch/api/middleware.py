"""Middleware: API key authentication."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Query, Request, WebSocket, WebSocketException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from headwatch.config import Settings

_bearer_scheme = HTTPBearer(auto_error=False)


def _key_matches(candidate: str | None, expected: str) -> bool:
    return candidate is not None and secrets.compare_digest(candidate.encode(), expected.encode())


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    token: Annotated[str | None, Query()] = None,
) -> None:
    """Check the caller against the configured API key.

    If no API key is configured (HEADWATCH_API_KEY not set), all requests pass.
    Otherwise the key must arrive as 'Authorization: Bearer <key>' or, for
    browser elements that cannot set headers (<img>), as '?token=<key>'.
    """
    settings: Settings = request.app.state.settings
    if settings.api_key is None:
        return

    supplied = credentials.credentials if credentials is not None else token
    if not _key_matches(supplied, settings.api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def verify_websocket_key(
    websocket: WebSocket,
    token: Annotated[str | None, Query()] = None,
) -> None:
    """WebSocket variant of verify_api_key; browsers can only pass the key as '?token='."""
    settings: Settings = websocket.app.state.settings
    if settings.api_key is None:
        return
    if not _key_matches(token, settings.api_key):
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid or missing API key")
