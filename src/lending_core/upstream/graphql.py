"""Shared GraphQL POST with error mapping to UpstreamError."""

from __future__ import annotations

from typing import Any, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from lending_core.errors import UpstreamError

M = TypeVar("M", bound=BaseModel)


async def post_graphql(
    http: httpx.AsyncClient,
    url: str,
    query: str,
    variables: dict[str, Any],
    schema: type[M],
    source: str,
    headers: dict[str, str] | None = None,
) -> M:
    """POST *query* and validate ``data`` against *schema*.

    Transport errors, non-2xx status, a non-empty ``errors`` array, a
    missing ``data`` member or a schema mismatch all raise UpstreamError.
    """
    try:
        resp = await http.post(url, json={"query": query, "variables": variables}, headers=headers)
    except httpx.HTTPError as exc:
        raise UpstreamError(source, f"request failed: {exc}") from exc

    if resp.status_code // 100 != 2:
        raise UpstreamError(source, f"HTTP {resp.status_code}: {resp.text[:200]}")

    try:
        body = resp.json()
    except ValueError as exc:
        raise UpstreamError(source, "response is not JSON") from exc

    if not isinstance(body, dict):
        raise UpstreamError(source, "response is not a JSON object")
    errors = body.get("errors")
    if errors:
        messages = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors)
        raise UpstreamError(source, f"GraphQL errors: {messages}")
    data = body.get("data")
    if data is None:
        raise UpstreamError(source, "response has no data")

    try:
        return schema.model_validate(data)
    except SchemaError as exc:
        raise UpstreamError(source, f"malformed response: {exc.error_count()} validation errors") from exc
