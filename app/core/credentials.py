"""Locate the caller's bearer credential in an inbound request."""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

_BEARER_PATTERN = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)
BODY_TOKEN_FIELDS = ("token", "access_token")


@dataclass(frozen=True)
class BearerCredential:
    """The caller's token (if any) and the request body parsed alongside it."""

    token: str | None
    body: dict[str, Any] = field(default_factory=dict)


def _parse_json_object(raw_body: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(raw_body)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else {}


def extract_bearer_credential(authorization: str | None, raw_body: bytes | str | None) -> BearerCredential:
    """Return the caller's bearer token with a fixed precedence.

    1. ``Authorization: Bearer <token>`` header.
    2. ``token`` then ``access_token`` field of a JSON object body.
    3. The whole body, stripped, when it is not JSON at all.

    The parsed JSON body is returned in every case so routes can read their
    own fields from it; non-object or unparsable bodies yield ``{}``.
    """
    if isinstance(raw_body, bytes):
        text = raw_body.decode("utf-8", errors="replace")
    else:
        text = raw_body or ""
    text = text.strip()

    body = _parse_json_object(text) if text else {}

    match = _BEARER_PATTERN.match((authorization or "").strip())
    if match:
        return BearerCredential(token=match.group(1).strip(), body=body or {})

    if body is None:
        return BearerCredential(token=text or None, body={})

    for key in BODY_TOKEN_FIELDS:
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return BearerCredential(token=value.strip(), body=body)
    return BearerCredential(token=None, body=body)
