"""URL canonicalisation and endpoint identity.

Identity is ``ep_`` followed by the first 8 hex characters of the SHA-256
digest of the canonical URL.  That is a 32-bit space: the birthday bound puts
a 1% chance of any collision at roughly 9,300 endpoints and 50% at roughly
77,000.  Catalogs are expected to stay in the low tens of thousands; widen
``ID_HASH_LENGTH`` if that stops being true (it changes every stored id).
"""

from __future__ import annotations

import hashlib
from urllib.parse import urlsplit

from beacon.validation import Checks

ID_PREFIX = "ep_"
ID_HASH_LENGTH = 8


def _fallback(raw: str) -> str:
    return raw.lower().rstrip("/")


def normalize_url(url: str) -> str:
    """Return the canonical form of *url*.

    Scheme and host are lowercased, the explicit port and query string are
    kept, the fragment is dropped and trailing slashes are stripped from the
    path.  Input that does not parse as an absolute URL falls back to a
    lowercase, trailing-slash-trimmed copy of the raw string.

    Raises:
        ValidationError: *url* is missing, not a string, or blank.
    """
    checks = Checks()
    checks.non_empty_str("url", url)
    checks.raise_if_any()

    raw = url.strip()
    try:
        parts = urlsplit(raw)
        port = parts.port  # raises ValueError on a non-numeric port
    except ValueError:
        return _fallback(raw)

    if not parts.scheme or not parts.hostname:
        return _fallback(raw)

    host = parts.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    netloc = f"{host}:{port}" if port is not None else host
    path = parts.path.rstrip("/")
    query = f"?{parts.query}" if parts.query else ""
    return f"{parts.scheme.lower()}://{netloc}{path}{query}"


def endpoint_id(url: str) -> str:
    """Derive the stable catalog id for *url* (canonicalised first)."""
    checks = Checks()
    checks.non_empty_str("url", url)
    checks.raise_if_any()

    canonical = normalize_url(url)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{ID_PREFIX}{digest[:ID_HASH_LENGTH]}"
