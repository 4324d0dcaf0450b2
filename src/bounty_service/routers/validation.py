"""Shared request validation helpers for routers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from bounty_service.core.admin import AdminGuard
from bounty_service.core.exceptions import ServiceError
from bounty_service.core.state import get_app_state

if TYPE_CHECKING:
    from fastapi import Request


def parse_json_body(raw_body: bytes) -> dict[str, Any]:
    """Parse JSON body, raising ServiceError on failure."""
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ServiceError(
            "INVALID_JSON",
            "Request body is not valid JSON",
            400,
            {},
        ) from exc

    if not isinstance(data, dict):
        raise ServiceError(
            "INVALID_JSON",
            "Request body must be a JSON object",
            400,
            {},
        )

    return data


async def read_optional_json(request: Request) -> dict[str, Any]:
    """Parse the body when one was sent, else return an empty object."""
    body = await request.body()
    return {} if body == b"" else parse_json_body(body)


def parse_query_int(request: Request, name: str, minimum: int) -> int | None:
    """Read an optional integer query parameter with a lower bound."""
    raw = request.query_params.get(name)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise ServiceError("INVALID_PAYLOAD", f"{name} must be an integer", 400, {}) from exc
    if value < minimum:
        raise ServiceError("INVALID_PAYLOAD", f"{name} must be >= {minimum}", 400, {})
    return value


def require_admin(request: Request) -> None:
    """Reject the request unless it carries a valid operator key within the rate ceiling."""
    state = get_app_state()
    if state.admin_guard is None:
        msg = "AdminGuard not initialized"
        raise RuntimeError(msg)

    client_id = request.client.host if request.client is not None else "unknown"
    presented_key = AdminGuard.extract_key(
        request.headers.get("x-api-key"),
        request.headers.get("authorization"),
    )
    state.admin_guard.check(client_id, presented_key)
