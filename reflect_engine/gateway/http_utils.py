"""Shared JSON-over-HTTP helpers for the remote adapters."""

from __future__ import annotations

import json
from typing import Any, Mapping
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen


def post_json(
    url: str,
    payload: Mapping[str, Any],
    *,
    service: str,
    timeout_s: float,
) -> dict[str, Any]:
    body = json.dumps(payload).encode("utf-8")
    req = Request(url, data=body, headers={"Content-Type": "application/json"}, method="POST")
    try:
        with urlopen(req, timeout=timeout_s) as response:
            raw = response.read().decode("utf-8")
    except HTTPError as exc:
        raw = exc.read().decode("utf-8", errors="replace") if exc.fp else str(exc)
        raise RuntimeError(f"{service} API error ({exc.code}): {raw}") from exc
    except URLError as exc:
        raise RuntimeError(f"{service} API request failed: {exc}") from exc
    except TimeoutError as exc:
        raise RuntimeError(f"{service} API request timed out after {timeout_s:.0f}s") from exc
    try:
        payload_json = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"{service} API returned invalid JSON: {raw[:200]}") from exc
    if not isinstance(payload_json, dict):
        raise RuntimeError(f"{service} API returned unexpected payload type {type(payload_json).__name__}")
    return payload_json
