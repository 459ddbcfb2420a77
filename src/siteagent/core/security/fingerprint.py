# src/siteagent/core/security/fingerprint.py
"""Fingerprints for certificate material and secrets.

Certificate fingerprints detect rotation: the connection watcher compares
the fingerprint of the stored credentials against the one the live handle
was built from. Secret fingerprints let tokens appear in logs without
revealing their value.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable


def material_fingerprint(parts: Iterable[str | bytes]) -> str:
    """SHA-256 over the given parts, each length-prefixed.

    Length prefixes keep ("ab", "c") and ("a", "bc") distinct.

    Returns:
        64-character hex string
    """
    digest = hashlib.sha256()
    for part in parts:
        data = part.encode("utf-8") if isinstance(part, str) else part
        digest.update(len(data).to_bytes(8, "big"))
        digest.update(data)
    return digest.hexdigest()


def secret_fingerprint(secret: str) -> str:
    """Short, non-reversible fingerprint of a secret for log output.

    Example:
        >>> len(secret_fingerprint("one-time-token"))
        12
    """
    if not secret:
        return ""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()[:12]
