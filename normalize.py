"""
Input normalization helpers shared by the handlers

These never touch the database. They trim, lowercase, deduplicate and
validate raw values taken from request bodies and query strings.
"""
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit, urlunsplit

HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{6}|[0-9a-fA-F]{3})$")
CONTACT_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]{2,}$")
_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")

MAX_PAGE_SIZE = 100
# Keeps skip well inside a signed 64-bit integer.
MAX_PAGE = 1_000_000
DEFAULT_PAGE_SIZE = 10


def escape_regex(value: str) -> str:
    return re.escape(value)


def contains_pattern(value: str) -> Dict[str, str]:
    """Case-insensitive substring match for a Mongo filter."""
    return {"$regex": escape_regex(value), "$options": "i"}


def normalize_email(value: str) -> str:
    return value.strip().lower()


def normalize_tag_name(value: str) -> str:
    return value.strip().lower()


def normalize_hex_color(value: str) -> Optional[str]:
    """Return the color with a leading '#', or None when it is not hex."""
    color = value.strip()
    if not HEX_COLOR_RE.match(color):
        return None
    return color if color.startswith("#") else f"#{color}"


def normalize_string_list(value: Any) -> List[str]:
    """Trimmed, non-empty, de-duplicated strings in first-seen order."""
    if not isinstance(value, (list, tuple)):
        return []
    seen: Dict[str, None] = {}
    for item in value:
        if not isinstance(item, str):
            continue
        item = item.strip()
        if item:
            seen.setdefault(item, None)
    return list(seen)


def normalize_image_url(value: Any) -> str:
    """Return a well-formed http(s) URL or an empty string."""
    if not isinstance(value, str):
        return ""
    url = value.strip()
    if not url or any(ch.isspace() for ch in url):
        return ""
    try:
        parts = urlsplit(url)
        parts.port  # raises on a malformed port
    except ValueError:
        return ""
    scheme = parts.scheme.lower()
    if scheme not in ("http", "https") or not parts.hostname:
        return ""
    return urlunsplit((scheme, parts.netloc, parts.path or "/", parts.query, parts.fragment))


def parse_int(raw: Any) -> Optional[int]:
    """Read the leading integer of a query value, like ``parseInt``."""
    if raw is None:
        return None
    match = _LEADING_INT_RE.match(str(raw))
    return int(match.group(1)) if match else None


@dataclass(frozen=True)
class PageRequest:
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def meta(self, total: int) -> Dict[str, Any]:
        total_pages = max(math.ceil(total / self.limit), 1)
        return {
            "page": self.page,
            "limit": self.limit,
            "total": total,
            "totalPages": total_pages,
            "hasNext": self.page < total_pages,
            "hasPrev": self.page > 1,
        }


def page_request(page_raw: Any, limit_raw: Any, default_limit: int = DEFAULT_PAGE_SIZE) -> PageRequest:
    """Parse page/limit query values. Unparsable values fall back to defaults."""
    page = parse_int(page_raw)
    limit = parse_int(limit_raw)
    if page is None:
        page = 1
    if limit is None:
        limit = default_limit
    return PageRequest(page=min(max(page, 1), MAX_PAGE), limit=min(max(limit, 1), MAX_PAGE_SIZE))


def clean_search(*values: Optional[str]) -> str:
    """First non-blank search term among the given query values."""
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""
