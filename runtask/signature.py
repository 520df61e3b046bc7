"""Run task request signing — HMAC-SHA512 over the raw request body."""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_HEADER = "x-tfc-task-signature"


def compute_signature(body: bytes, key: str) -> str:
    """Hex HMAC-SHA512 of the exact wire bytes.

    The body must not be parsed and re-encoded first: key order and
    whitespace would no longer match what the platform signed.
    """
    return hmac.new(key.encode("utf-8"), msg=body, digestmod=hashlib.sha512).hexdigest()


def signature_matches(body: bytes, key: str, remote: str | None) -> bool:
    if not remote:
        return False
    computed = compute_signature(body, key).encode("ascii")
    return hmac.compare_digest(computed, remote.strip().lower().encode("utf-8"))
