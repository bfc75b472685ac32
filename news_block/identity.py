"""Caller identity used for rate limiting."""

from __future__ import annotations

import hashlib
from typing import Mapping, Optional

_IP_HEADERS = ("HTTP_X_FORWARDED_FOR", "HTTP_X_REAL_IP", "REMOTE_ADDR")


def client_ip_from_headers(environ: Mapping[str, str]) -> str:
    """Pick the client address from WSGI-style request variables."""
    for name in _IP_HEADERS:
        value = (environ.get(name) or "").strip()
        if value:
            return value
    return ""


def hash_client_ip(ip: str, salt: str) -> str:
    return hashlib.md5((ip + salt).encode("utf-8")).hexdigest()


def resolve_identity(
    user_id: Optional[str] = None, client_ip: str = "", salt: str = ""
) -> str:
    """Return ``user_<id>`` for signed-in callers, else a salted IP hash."""
    if user_id:
        return f"user_{user_id}"
    return f"guest_{hash_client_ip(client_ip, salt)}"
