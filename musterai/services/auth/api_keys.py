from __future__ import annotations

import hashlib
import secrets
from uuid import uuid4


API_KEY_PREFIX = "mak"


def hash_api_key(raw_key: str) -> str:
    # Use SHA-256 for deterministic, non-reversible key storage.
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key(*, key_id: str | None = None) -> tuple[str, str, str, str]:
    # Embed the key id in the token so operators can trace secrets safely.
    resolved_id = key_id or uuid4().hex
    secret = secrets.token_urlsafe(32)
    raw_key = f"{API_KEY_PREFIX}_{resolved_id}_{secret}"
    key_prefix = raw_key[:12]
    return resolved_id, raw_key, key_prefix, hash_api_key(raw_key)
