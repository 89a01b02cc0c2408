from __future__ import annotations
import sys, asyncio
from typing import Awaitable, Callable, Dict, List

from http_client import RetryPolicy

from .api import BatchAPI
from .models import FailureEntry, SubRequest, SubResponse, TransientFailure
from .utils import error_details, parse_retry_after

Sleep = Callable[[float], Awaitable[None]]

class GroupResult:
    """Outcome of one group: successes in request order, terminal failures, and call counters."""

    def __init__(self):
        self.succeeded: List[SubResponse] = []
        self.failed: List[FailureEntry] = []
        self.http_calls = 0
        self.sub_requests = 0
        self.retries = 0

def classify_transient(resp: SubResponse, honor_retry_after: bool) -> TransientFailure:
    retry_after = parse_retry_after(resp.get("headers")) if honor_retry_after else None
    return {"id": str(resp.get("id")), "status": int(resp.get("status", 0)), "retryAfter": retry_after}

def failure_entry(resp: SubResponse) -> FailureEntry:
    status = int(resp.get("status", 0))
    code, message = error_details(resp.get("body"), status)
    return {"id": str(resp.get("id")), "status": status, "errorCode": code, "errorMessage": message}

async def execute_group(
    api: BatchAPI,
    group: List[SubRequest],
    policy: RetryPolicy,
    *,
    honor_retry_after: bool = True,
    label: str = "batch",
    sleep: Sleep = asyncio.sleep,
) -> GroupResult:
    """
    Drive one group to completion:
        • POST the pending set as one envelope
        • 2xx → success, transient status → stays pending, anything else → failure entry
        • repeat with only the transient subset, at most `policy.retries` attempts
    Ids still pending after the last attempt get a RetriesExhausted failure entry.
    A TransportError from the envelope call propagates untouched.
    """
    result = GroupResult()
    pending = list(group)
    failures: Dict[str, int] = {}
    last_status: Dict[str, int] = {}
    retry_count = 0

    while pending and retry_count < policy.retries:
        responses = await api.post_batch(pending)
        result.http_calls += 1
        result.sub_requests += len(pending)

        by_id = {str(r.get("id")): r for r in responses}
        still_pending: List[SubRequest] = []
        delay = 0.0
        for req in pending:
            req_id = req["id"]
            resp = by_id.pop(req_id, None)
            if resp is None:
                print(f"[{label}] [warn] no response for id {req_id}; will retry", file=sys.stderr)
                resp = {"id": req_id, "status": 0}
                status = 0
            else:
                status = int(resp.get("status", 0))

            if 200 <= status < 300:
                result.succeeded.append(resp)
                continue

            if status == 0 or policy.is_transient(status):
                transient = classify_transient(resp, honor_retry_after)
                failures[req_id] = failures.get(req_id, 0) + 1
                last_status[req_id] = status
                wait = policy.sleep_seconds(retry_count, failures[req_id], transient["retryAfter"])
                delay = max(delay, wait)
                still_pending.append(req)
                if status:
                    print(f"[{label}] [retry {retry_count + 1}/{policy.retries}] {req['method']} {req['url']} "
                          f"id={req_id} returned {status}", file=sys.stderr)
                continue

            entry = failure_entry(resp)
            result.failed.append(entry)
            print(f"[{label}] [fatal] {req['method']} {req['url']} id={req_id} returned {status}: "
                  f"{entry['errorCode']}: {entry['errorMessage']}", file=sys.stderr)

        for stray in by_id:
            print(f"[{label}] [warn] ignoring response for unknown id {stray}", file=sys.stderr)

        pending = still_pending
        retry_count += 1
        if pending and retry_count < policy.retries:
            result.retries += len(pending)
            if delay > 0:
                print(f"[{label}] {len(pending)} request(s) pending, sleeping {delay:.2f}s", file=sys.stderr)
                await sleep(delay)

    for req in pending:
        status = last_status.get(req["id"], 0)
        print(f"[{label}] [giving up] {req['method']} {req['url']} id={req['id']} "
              f"after {policy.retries} attempt(s), last status {status}", file=sys.stderr)
        result.failed.append({
            "id": req["id"],
            "status": status,
            "errorCode": "RetriesExhausted",
            "errorMessage": f"still failing with status {status} after {policy.retries} attempt(s)",
        })
    return result
