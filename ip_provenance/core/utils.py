import os
import re
import structlog
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from ip_provenance import config

logger = structlog.get_logger()

__all__ = [
    "WEI_PER_TOKEN",
    "to_wei",
    "from_wei",
    "parse_decimal",
    "gateway_url",
    "extract_cid",
    "explorer_ip_url",
    "explorer_tx_url",
    "shorten_id",
    "parse_timestamp",
    "timestamp_millis",
    "format_timestamp",
    "format_registration_date",
    "format_file_size",
    "sanitize_filename",
    "is_blank",
]

WEI_PER_TOKEN = Decimal(10) ** 18

_CID_PATTERN = re.compile(r"/ipfs/([a-zA-Z0-9]+)")


def parse_decimal(value: Union[str, int, float, Decimal, None]) -> Optional[Decimal]:
    """Parse a human amount into a Decimal, returning None when it is not a number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        # str() keeps floats like 0.01 from turning into binary noise
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def to_wei(amount: Union[str, int, float, Decimal]) -> int:
    """Convert a token amount to integer base units (18 decimals)."""
    value = parse_decimal(amount)
    if value is None:
        raise ValueError(f"Not a numeric amount: {amount!r}")
    return int((value * WEI_PER_TOKEN).to_integral_value())


def from_wei(amount: int) -> str:
    """Convert integer base units back to a normalized token amount string."""
    value = Decimal(int(amount)) / WEI_PER_TOKEN
    text = format(value.normalize(), "f")
    return text


def gateway_url(uri: str, gateway: Optional[str] = None) -> str:
    """Turn an ipfs:// locator into a public gateway URL. Gateway URLs pass through."""
    gateway = gateway or config.IPFS_GATEWAY_URL
    if not gateway.endswith("/"):
        gateway += "/"
    if uri.startswith("ipfs://"):
        return gateway + uri[len("ipfs://"):]
    return uri


def extract_cid(uri: str) -> Optional[str]:
    """Extract the content identifier from an ipfs:// or gateway URI."""
    if not uri:
        return None
    if uri.startswith("ipfs://"):
        return uri[len("ipfs://"):].split("?")[0]
    match = _CID_PATTERN.search(uri)
    return match.group(1) if match else None


def explorer_ip_url(ip_id: str) -> str:
    return f"{config.PROTOCOL_EXPLORER_URL}/ipa/{ip_id}"


def explorer_tx_url(tx_hash: str) -> str:
    return f"{config.BLOCK_EXPLORER_URL}/tx/{tx_hash}"


def shorten_id(ip_id: str) -> str:
    """Display form of an address-like id: first 10 and last 8 characters."""
    if len(ip_id) <= 18:
        return ip_id
    return f"{ip_id[:10]}...{ip_id[-8:]}"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp. Naive values are taken as UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def timestamp_millis(value: str) -> str:
    """Epoch milliseconds of an ISO timestamp, as a string."""
    return str(int(parse_timestamp(value).timestamp() * 1000))


def format_timestamp(value: str, with_time: bool = True) -> str:
    """Human-readable UTC rendering, e.g. 'January 15, 2024 at 06:00 PM UTC'."""
    parsed = parse_timestamp(value).astimezone(timezone.utc)
    if not with_time:
        return parsed.strftime("%B %d, %Y")
    return parsed.strftime("%B %d, %Y at %I:%M %p UTC")


def format_registration_date(seconds: Optional[int]) -> str:
    """Format an on-chain registration date (epoch seconds)."""
    if not seconds:
        return "Not Available"
    date = datetime.fromtimestamp(int(seconds), tz=timezone.utc)
    return date.strftime("%B %d, %Y at %I:%M:%S %p UTC")


def format_file_size(size_bytes: int) -> str:
    """Format file size in human-readable format."""
    if size_bytes == 0:
        return "0 B"

    size_names = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while size_bytes >= 1024 and i < len(size_names) - 1:
        size_bytes /= 1024.0
        i += 1

    return f"{size_bytes:.1f} {size_names[i]}"


def sanitize_filename(filename: str) -> str:
    """Sanitize filename for pinning."""
    if not filename:
        return "unnamed_file"

    # Keep only alphanumeric, dots, dashes, underscores
    sanitized = re.sub(r'[^\w\-_\.]', '_', filename)

    # Remove multiple consecutive underscores
    sanitized = re.sub(r'_{2,}', '_', sanitized)

    # Ensure it doesn't start with a dot (hidden file)
    if sanitized.startswith('.'):
        sanitized = 'file_' + sanitized

    if len(sanitized) > 255:
        name, ext = os.path.splitext(sanitized)
        sanitized = name[:255 - len(ext)] + ext

    return sanitized


def is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()
