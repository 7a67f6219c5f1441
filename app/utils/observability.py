"""Observability helpers (correlation IDs, secret masking for logs)."""
from __future__ import annotations
import uuid
from typing import Mapping

REQUEST_ID_HEADER = "X-Request-ID"

def ensure_request_id(headers: Mapping[str, str]) -> str:
    return headers.get(REQUEST_ID_HEADER, None) or str(uuid.uuid4())

def mask_secret(value: str | None, visible: int = 4) -> str | None:
    """Keep only a short prefix of tokens/secrets for log output."""
    if value is None:
        return None
    if len(value) <= visible:
        return "***"
    return value[:visible] + "..."

__all__ = ["ensure_request_id", "mask_secret", "REQUEST_ID_HEADER"]
