"""
Storage key, content type and public URL helpers.

These are pure functions: no I/O, no logging. The URL builder and the URL
parser are inverses of each other, which is what lets a gallery removal
find the object that an earlier upload created.
"""

import secrets
import time
from typing import Optional
from urllib.parse import quote, unquote, urlsplit

from .models import Session

_TOKEN_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
_TOKEN_LENGTH = 6

# Characters encodeURIComponent leaves alone; quote() already keeps "_.-~".
_KEY_SAFE_CHARS = "!*'()"

DEFAULT_CONTENT_TYPE = "application/octet-stream"

CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "bmp": "image/bmp",
    "ico": "image/x-icon",
}


def _epoch_millis() -> int:
    return int(time.time() * 1000)


def _random_token() -> str:
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(_TOKEN_LENGTH))


def split_name(name: str) -> tuple[str, str]:
    """
    Split a filename at its last dot.

    The dot stays with the extension: "logo.png" -> ("logo", ".png").
    A name without a dot is all base: "noext" -> ("noext", "").
    """
    index = name.rfind(".")
    if index < 0:
        return name, ""
    return name[:index], name[index:]


def normalize_prefix(prefix: Optional[str]) -> str:
    """Strip surrounding slashes and end with exactly one '/'; blank -> ''."""
    if not prefix:
        return ""
    cleaned = prefix.strip().strip("/")
    if not cleaned:
        return ""
    return f"{cleaned}/"


def unique_key(original_name: str, prefix: Optional[str] = None) -> str:
    """
    Derive a collision-resistant storage key.

    Shape: <prefix/><base>_<epochMillis>_<random6><.ext>

    Uniqueness is probabilistic: two calls in the same millisecond collide
    only if they draw the same 6-character base36 token (1 in 36**6).
    """
    base, ext = split_name(original_name)
    key = f"{base}_{_epoch_millis()}_{_random_token()}{ext}"
    return normalize_prefix(prefix) + key


def content_type(extension: str) -> str:
    """Map an extension (with or without the dot) to a MIME type."""
    normalized = (extension or "").strip().lstrip(".").lower()
    return CONTENT_TYPES.get(normalized, DEFAULT_CONTENT_TYPE)


def encode_key(storage_key: str) -> str:
    """
    Percent-encode a storage key as a single component.

    Slashes are encoded too ("a/b c.png" -> "a%2Fb%20c.png"), matching the
    file-name header sent on upload.
    """
    return quote(storage_key, safe=_KEY_SAFE_CHARS)


def _strip_domain(custom_domain: str) -> str:
    return custom_domain[:-1] if custom_domain.endswith("/") else custom_domain


def build_url(
    session: Session,
    bucket_name: str,
    storage_key: str,
    custom_domain: Optional[str] = None,
) -> str:
    """Public URL for a stored object."""
    if custom_domain:
        return f"{_strip_domain(custom_domain)}/{encode_key(storage_key)}"
    return f"{session.download_base_url}/file/{bucket_name}/{encode_key(storage_key)}"


def storage_key_from_url(
    url: Optional[str],
    bucket_name: str,
    custom_domain: Optional[str] = None,
) -> Optional[str]:
    """
    Recover the storage key from a URL produced by build_url.

    Handles the native shape (/file/<bucket>/<key>) and the custom-domain
    shape (<domain>/<key>, where the domain may carry a path). Returns None
    when no non-empty key can be extracted, including for values that
    aren't strings or don't parse as URLs.
    """
    if not url or not isinstance(url, str):
        return None

    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None

    encoded: Optional[str] = None
    segments = parts.path.split("/")

    # ['', 'file', '<bucket>', ...key segments]
    if len(segments) >= 4 and segments[1] == "file" and segments[2] == bucket_name:
        encoded = "/".join(segments[3:])
    elif custom_domain:
        domain = _strip_domain(custom_domain)
        if url.startswith(domain + "/"):
            encoded = url[len(domain) + 1:].split("?", 1)[0].split("#", 1)[0]

    if encoded is None:
        encoded = parts.path[1:]

    key = unquote(encoded)
    return key or None
