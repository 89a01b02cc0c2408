"""
Follow `@odata.nextLink` continuation links in batched rounds.

Each round takes up to 20 pending links, sends them as GET sub-requests under
synthetic ids (`nl_0`, `nl_1`, ...) and maps every synthetic id back to the
caller's original request id through a table that lives for that round only.
Pages that come back with another next link are queued for a later round with
the same origin id. Retry-After is not honoured here; transient statuses use
the plain backoff schedule. A page that fails for good is logged and counts as
empty, so the origin id keeps whatever it has collected so far.
"""
from __future__ import annotations
import sys, asyncio
from typing import Any, Dict, List, Optional, Tuple

from http_client import RetryPolicy

from .aggregator import ResultAggregator
from .api import BatchAPI
from .executor import Sleep, execute_group
from .models import BatchStats, ContinuationLink, SubRequest, empty_stats
from .utils import MAX_BATCH_SIZE, relative_url

NEXT_LINK = "@odata.nextLink"

def extract_page(body: Any) -> Tuple[List[Any], Optional[str]]:
    """Split a success body into (items, next link). Non-collection bodies become one item."""
    if body is None or body == "" or body == {}:
        return [], None
    if isinstance(body, list):
        return list(body), None
    if isinstance(body, dict) and "value" in body:
        value = body.get("value")
        items = value if isinstance(value, list) else [value]
        return list(items), body.get(NEXT_LINK) or None
    return [body], None

def build_round(links: List[ContinuationLink]) -> Tuple[List[SubRequest], Dict[str, str]]:
    """Sub-requests for one round plus the synthetic-id -> origin-id table."""
    requests: List[SubRequest] = []
    origins: Dict[str, str] = {}
    for i, link in enumerate(links):
        synthetic = f"nl_{i}"
        origins[synthetic] = link["originId"]
        requests.append({"id": synthetic, "method": "GET", "url": relative_url(link["url"])})
    return requests, origins

async def resolve_continuations(
    api: BatchAPI,
    links: List[ContinuationLink],
    aggregator: ResultAggregator,
    policy: RetryPolicy,
    *,
    sleep: Sleep = asyncio.sleep,
) -> BatchStats:
    """Fetch every page behind `links` (and the pages they lead to), folding items into aggregator."""
    stats = empty_stats()
    pending = list(links)
    round_no = 0
    while pending:
        round_no += 1
        current, pending = pending[:MAX_BATCH_SIZE], pending[MAX_BATCH_SIZE:]
        requests, origins = build_round(current)
        print(f"[page#{round_no}] fetching {len(requests)} continuation page(s), {len(pending)} queued", file=sys.stderr)

        result = await execute_group(
            api, requests, policy, honor_retry_after=False, label=f"page#{round_no}", sleep=sleep,
        )
        stats["http_calls"] += result.http_calls
        stats["sub_requests"] += result.sub_requests
        stats["retries"] += result.retries

        for resp in result.succeeded:
            origin = origins[str(resp["id"])]
            items, next_link = extract_page(resp.get("body"))
            aggregator.add_page(origin, items)
            stats["pages"] += 1
            if next_link:
                pending.append({"originId": origin, "url": next_link})

        for failure in result.failed:
            origin = origins[failure["id"]]
            print(f"[warn] continuation page for id {origin} failed ({failure['status']} "
                  f"{failure['errorCode']}); treating it as empty", file=sys.stderr)
    return stats
