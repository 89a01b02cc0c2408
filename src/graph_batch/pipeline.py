from __future__ import annotations
import sys, asyncio
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from http_client import HttpClient, RetryPolicy

from .aggregator import ResultAggregator
from .api import BatchAPI
from .executor import Sleep, execute_group
from .models import BatchStats, ContinuationLink, LogicalRequest, ResultEntry, SubRequest, empty_stats
from .pagination import extract_page, resolve_continuations
from .utils import BatchRequestError, merge_query_parameters, partition

GRAPH_ROOT = "https://graph.microsoft.com"

def endpoint_for(beta: bool = False) -> str:
    return f"{GRAPH_ROOT}/{'beta' if beta else 'v1.0'}"

def validate_requests(requests: List[LogicalRequest]) -> None:
    """Reject an empty list, entries missing id/method/url, and repeated ids."""
    if not requests:
        raise BatchRequestError("no requests to batch")
    seen = set()
    for i, req in enumerate(requests):
        if not isinstance(req, dict):
            raise BatchRequestError(f"request #{i} is not an object: {req!r}")
        missing = [k for k in ("id", "method", "url") if not req.get(k)]
        if missing:
            raise BatchRequestError(f"request #{i} is missing {', '.join(missing)}")
        req_id = str(req["id"])
        if req_id in seen:
            raise BatchRequestError(f"duplicate request id {req_id!r}")
        seen.add(req_id)

def to_sub_request(req: LogicalRequest, global_parameters: Optional[Mapping[str, Any]] = None) -> SubRequest:
    """
    Envelope entry for one request, with its query string resolved once.
    Retries reuse the resolved entry, so parameters are never merged twice.
    """
    url = str(req["url"])
    if not url.startswith("/"):
        url = "/" + url
    sub: SubRequest = {
        "id": str(req["id"]),
        "method": str(req["method"]).upper(),
        "url": merge_query_parameters(url, req.get("queryParameters"), global_parameters),
    }
    headers: Dict[str, str] = dict(req.get("headers") or {})
    if req.get("body") is not None:
        sub["body"] = req["body"]
        if not any(k.lower() == "content-type" for k in headers):
            headers["Content-Type"] = "application/json"
    if headers:
        sub["headers"] = headers
    return sub

async def run_batch(
    api: BatchAPI,
    requests: List[LogicalRequest],
    *,
    max_retries: int = 6,
    global_parameters: Optional[Mapping[str, Any]] = None,
    group_delay: float = 0.0,
    as_json: bool = False,
    depth: int = 20,
    sleep: Sleep = asyncio.sleep,
) -> Tuple[Union[List[ResultEntry], str], BatchStats]:
    """
    Orchestrate one call:
        1. Validate and resolve every request (query parameters merged once)
        2. Execute groups of ≤20 sequentially, each with its own retry loop
        3. Follow continuation links in batched rounds
        4. Aggregate one entry per request id, in input order
    Returns (results or their JSON text, stats). A TransportError aborts everything.
    """
    validate_requests(requests)
    policy = RetryPolicy(retries=max_retries)
    resolved = [to_sub_request(r, global_parameters) for r in requests]
    groups = partition(resolved)
    aggregator = ResultAggregator([r["id"] for r in resolved])
    links: List[ContinuationLink] = []
    stats = empty_stats()

    print(f"Sending {len(resolved)} request(s) in {len(groups)} batch(es)…", file=sys.stderr)
    for i, group in enumerate(groups, 1):
        result = await execute_group(api, group, policy, label=f"batch#{i}", sleep=sleep)
        stats["http_calls"] += result.http_calls
        stats["sub_requests"] += result.sub_requests
        stats["retries"] += result.retries

        for resp in result.succeeded:
            items, next_link = extract_page(resp.get("body"))
            aggregator.add_page(str(resp["id"]), items)
            if next_link:
                links.append({"originId": str(resp["id"]), "url": next_link})
        for entry in result.failed:
            aggregator.add_failure(entry)

        print(f"[batch#{i}] {len(group)} request(s): {len(result.succeeded)} ok, "
              f"{len(result.failed)} failed, {result.http_calls} call(s)", file=sys.stderr)
        if group_delay > 0 and i < len(groups):
            await sleep(group_delay)

    if links:
        print(f"Following {len(links)} continuation link(s)…", file=sys.stderr)
        page_stats = await resolve_continuations(api, links, aggregator, policy, sleep=sleep)
        for key in ("http_calls", "sub_requests", "retries", "pages"):
            stats[key] += page_stats[key]

    results = aggregator.results()
    stats["failed"] = sum(1 for r in results if "errorCode" in r)
    stats["succeeded"] = len(results) - stats["failed"]
    print(f"""
        ====== Batch summary ======
        Requests       : {len(resolved)}
        Succeeded      : {stats['succeeded']}
        Failed         : {stats['failed']}
        HTTP calls     : {stats['http_calls']}
        Sub-requests   : {stats['sub_requests']}
        Retries        : {stats['retries']}
        Extra pages    : {stats['pages']}
        ===========================
    """, file=sys.stderr)
    return aggregator.output(as_json=as_json, depth=depth), stats

async def invoke_batch(
    access_token: str,
    requests: List[LogicalRequest],
    *,
    max_retries: int = 6,
    global_parameters: Optional[Mapping[str, Any]] = None,
    group_delay: float = 0.0,
    beta: bool = False,
    as_json: bool = False,
    depth: int = 20,
    proxy: Optional[str] = None,
    connect_timeout: float = 5.0,
    read_timeout: float = 30.0,
    http: Optional[HttpClient] = None,
) -> Tuple[Union[List[ResultEntry], str], BatchStats]:
    """Caller entry point: open an authenticated client for the chosen API version and run the batch."""
    validate_requests(requests)
    client = http or HttpClient(
        base_url=endpoint_for(beta),
        access_token=access_token,
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        proxy=proxy,
    )
    async with client:
        return await run_batch(
            BatchAPI(client),
            requests,
            max_retries=max_retries,
            global_parameters=global_parameters,
            group_delay=group_delay,
            as_json=as_json,
            depth=depth,
        )
