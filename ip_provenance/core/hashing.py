"""
Content addressing: deterministic 32-byte digests for strings, JSON documents
and remote resources, rendered in the 0x-prefixed hex layout the ledger stores.
"""

import hashlib
import json
import structlog
from typing import Any, Optional

import requests

from ip_provenance import config
from ip_provenance.core.errors import FetchError

logger = structlog.get_logger()

__all__ = [
    "DIGEST_SIZE",
    "canonical_json",
    "hash_bytes",
    "hash_string",
    "hash_json",
    "hash_remote",
    "is_digest",
]

DIGEST_SIZE = 32


def canonical_json(document: Any) -> str:
    """
    Serialize a JSON value with stable key ordering.

    This is the exact text that gets pinned for JSON documents, so the digest
    of this string is the digest of the uploaded bytes.
    """
    return json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _to_digest(raw: bytes) -> str:
    if len(raw) != DIGEST_SIZE:
        raise ValueError(f"digest must be {DIGEST_SIZE} bytes, got {len(raw)}")
    return "0x" + raw.hex()


def hash_bytes(content: bytes) -> str:
    """SHA-256 digest of raw bytes."""
    return _to_digest(hashlib.sha256(content).digest())


def hash_string(content: str) -> str:
    """SHA-256 digest of the UTF-8 encoding of a string."""
    return hash_bytes(content.encode("utf-8"))


def hash_json(document: Any) -> str:
    """Order-independent digest of a JSON value."""
    return hash_string(canonical_json(document))


def hash_remote(url: str, session: Optional[requests.Session] = None,
                timeout: Optional[float] = None) -> str:
    """
    Fetch a resource fully into memory and hash its raw bytes.

    Args:
        url: Fetchable URL of the resource
        session: Optional HTTP session to reuse
        timeout: Optional request timeout in seconds

    Returns:
        0x-prefixed hex digest

    Raises:
        FetchError: resource unreachable or non-2xx. No retry is attempted.
    """
    http = session or requests
    try:
        response = http.get(url, timeout=timeout if timeout is not None else config.HTTP_TIMEOUT)
    except requests.exceptions.RequestException as e:
        logger.error("Remote resource unreachable", url=url, error=str(e))
        raise FetchError(f"Failed to fetch {url}: {e}", url=url)

    if not 200 <= response.status_code < 300:
        logger.error("Remote resource returned error status", url=url, status_code=response.status_code)
        raise FetchError(
            f"Failed to fetch {url}: HTTP {response.status_code}",
            url=url,
            status_code=response.status_code,
        )

    digest = hash_bytes(response.content)
    logger.debug("Hashed remote resource", url=url, size=len(response.content), digest=digest)
    return digest


def is_digest(value: Any) -> bool:
    """True when value is a 0x-prefixed 32-byte hex digest."""
    if not isinstance(value, str) or not value.startswith("0x"):
        return False
    body = value[2:]
    if len(body) != DIGEST_SIZE * 2:
        return False
    try:
        bytes.fromhex(body)
    except ValueError:
        return False
    return True
