from __future__ import annotations
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import parse_qsl, quote, urlencode, urlsplit
import json

MAX_BATCH_SIZE = 20
API_VERSIONS = ("v1.0", "beta")

class BatchRequestError(ValueError):
    """Caller input that cannot be batched (empty list, missing fields, duplicate ids)."""

def chunked(seq: List[Any], size: int) -> Iterable[List[Any]]:
    """Yield successive chunks from seq of length <= size."""
    for i in range(0, len(seq), size):
        yield seq[i:i + size]

def partition(requests: List[Any], size: int = MAX_BATCH_SIZE) -> List[List[Any]]:
    """Split requests into ordered groups of at most `size`; an empty list is an error."""
    if not requests:
        raise BatchRequestError("no requests to batch")
    size = max(1, min(MAX_BATCH_SIZE, size))
    return list(chunked(requests, size))

def merge_query_parameters(
    url: str,
    query_parameters: Optional[Mapping[str, Any]] = None,
    global_parameters: Optional[Mapping[str, Any]] = None,
) -> str:
    """
    Append request-level and global query parameters to url.
    A key set on the request, in its mapping or already in its url, always
    wins; global keys only fill the gaps. Returns url untouched when there is
    nothing to add.
    """
    owned = {k for k, _ in parse_qsl(urlsplit(url).query, keep_blank_values=True)}
    merged: Dict[str, Any] = {k: v for k, v in (query_parameters or {}).items() if k not in owned}
    owned.update(merged)
    for key, value in (global_parameters or {}).items():
        if key not in owned:
            merged[key] = value
    if not merged:
        return url
    query = urlencode([(str(k), str(v)) for k, v in merged.items()], quote_via=quote)
    return f"{url}{'&' if '?' in url else '?'}{query}"

def relative_url(link: str) -> str:
    """
    Turn an absolute continuation link into the relative path the envelope expects:
    https://graph.microsoft.com/v1.0/users?$skiptoken=X -> /users?$skiptoken=X
    """
    parts = urlsplit(link)
    path = parts.path or "/"
    segments = path.lstrip("/").split("/", 1)
    if segments[0] in API_VERSIONS:
        path = "/" + (segments[1] if len(segments) > 1 else "")
    if not path.startswith("/"):
        path = "/" + path
    return f"{path}?{parts.query}" if parts.query else path

def header_value(headers: Optional[Mapping[str, Any]], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    if not headers:
        return None
    lowered = name.lower()
    for key, value in headers.items():
        if str(key).lower() == lowered:
            return None if value is None else str(value)
    return None

def parse_retry_after(headers: Optional[Mapping[str, Any]]) -> Optional[float]:
    """Seconds from a Retry-After header (delta-seconds or HTTP-date); None if absent or unparseable."""
    raw = header_value(headers, "Retry-After")
    if raw is None or not raw.strip():
        return None
    raw = raw.strip()
    try:
        return max(0.0, float(raw))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(tz=timezone.utc)).total_seconds())

def error_details(body: Any, status: int) -> Tuple[str, str]:
    """(code, message) from a {"error": {"code", "message"}} body; tolerates anything else."""
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict):
            return str(err.get("code") or status), str(err.get("message") or "")
        if isinstance(err, str):
            return err, str(body.get("error_description") or body.get("message") or "")
    if isinstance(body, str) and body:
        return str(status), body[:500]
    return str(status), ""

def limit_depth(value: Any, depth: int) -> Any:
    """Collapse containers nested deeper than `depth` into their compact JSON text."""
    if not isinstance(value, (dict, list)):
        return value
    if depth <= 0:
        return json.dumps(value, separators=(",", ":"), default=str)
    if isinstance(value, dict):
        return {k: limit_depth(v, depth - 1) for k, v in value.items()}
    return [limit_depth(v, depth - 1) for v in value]

def to_json(value: Any, depth: int = 20) -> str:
    return json.dumps(limit_depth(value, max(1, depth)), indent=2, default=str)
