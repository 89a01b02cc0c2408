# graph_batch/http_client.py
from __future__ import annotations
import sys, uuid
from typing import Any, Optional
import httpx

class TransportError(Exception):
    """The batch call itself failed (network error or non-2xx envelope). Never retried."""

    def __init__(self, message: str, status: Optional[int] = None, detail: Any = None):
        super().__init__(message)
        self.status = status
        self.detail = detail

class RetryPolicy:
    def __init__(
        self,
        retries: int = 6,
        backoff_cap: float = 60.0,
        retry_statuses: set[int] | None = None,
    ):
        self.retries = max(1, retries)
        self.backoff_cap = backoff_cap
        self.retry_statuses = retry_statuses or {429, 500, 502, 503, 504}

    def is_transient(self, status: int) -> bool:
        return status in self.retry_statuses

    def sleep_seconds(self, retry_count: int, failures: int, retry_after: Optional[float] = None) -> float:
        # Retry-After wins; a request's first transient failure retries at once,
        # later ones wait 2 ** retry_count (2, 4, 8... since retry_count >= 1 by then)
        if retry_after is not None:
            return max(0.0, retry_after)
        if failures <= 1:
            return 0.0
        return min(self.backoff_cap, float(2 ** retry_count))

class HttpClient:
    """
    - Reusable async HTTP client with:
      - base_url
      - bearer-token authorization
      - httpx timeouts
      - optional outbound proxy
      - no retries: any network error or non-2xx raises TransportError
    """

    def __init__(
        self,
        base_url: str,
        access_token: str,
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        *,
        proxy: Optional[str] = None,
        default_headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=read_timeout,
            pool=read_timeout,
        )
        self.proxy = proxy
        self.transport = transport
        self.default_headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {access_token}",
            **(default_headers or {}),
        }
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        kwargs: dict[str, Any] = {}
        if self.proxy:
            kwargs["proxy"] = self.proxy
        if self.transport is not None:
            kwargs["transport"] = self.transport
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, headers=self.default_headers, **kwargs
        )
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Single-attempt request. `path` may be relative to base_url or absolute.
        Each request tagged with X-Request-Id for traceability.
        """
        assert self._client is not None, "HttpClient used outside 'async with'"

        req_id = kwargs.pop("req_id", str(uuid.uuid4()))
        headers = kwargs.pop("headers", {})
        headers.setdefault("X-Request-Id", req_id)
        kwargs["headers"] = headers

        url = path if path.startswith("http") else self.base_url + path # for logs

        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            print(f"[req#{req_id}] [fatal] {method} {url} network error: {e}", file=sys.stderr)
            raise TransportError(f"{method} {url} failed: {e}") from e

        status = resp.status_code
        if not (200 <= status < 300):
            try:
                detail = resp.json()
            except ValueError:
                detail = resp.text[:200]
            print(f"[req#{req_id}] [fatal] {method} {url} returned {status}: {detail}", file=sys.stderr)
            raise TransportError(f"{method} {url} returned {status}", status=status, detail=detail)
        return resp
