"""
TypedDict models for the `$batch` envelope and the engine's result set.

Includes:
- LogicalRequest: one caller operation (id unique within a call)
- SubRequest / SubResponse: entries of the request / response envelopes
- ContinuationLink: one pending next page, traced to its original request id
- TransientFailure: a retryable sub-response with its optional Retry-After
- ResultEntry: one terminal outcome per original request id
- BatchStats: counters returned alongside the results

"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, TypedDict, Union

# caller input
class LogicalRequest(TypedDict, total=False):
    id: str
    method: str
    url: str                 # relative, e.g. "/users"
    body: Any
    headers: Dict[str, str]
    queryParameters: Dict[str, Any]

# POST /$batch {"requests": [...]}
class SubRequest(TypedDict, total=False):
    id: str
    method: str
    url: str
    body: Any
    headers: Dict[str, str]

# POST /$batch -> {"responses": [...]}
class SubResponse(TypedDict, total=False):
    id: str
    status: int
    body: Any
    headers: Dict[str, str]

class ContinuationLink(TypedDict):
    originId: str
    url: str                 # absolute @odata.nextLink

class TransientFailure(TypedDict):
    id: str
    status: int
    retryAfter: Optional[float]

class SuccessEntry(TypedDict):
    id: str
    status: int
    response: Dict[str, List[Any]]   # {"value": [...]}

class FailureEntry(TypedDict):
    id: str
    status: int
    errorCode: str
    errorMessage: str

ResultEntry = Union[SuccessEntry, FailureEntry]

class BatchStats(TypedDict):
    http_calls: int          # $batch POSTs issued
    sub_requests: int        # envelope entries sent, retries included
    retries: int             # transient sub-responses re-queued
    pages: int               # continuation pages fetched
    succeeded: int
    failed: int

def empty_stats() -> BatchStats:
    return {"http_calls": 0, "sub_requests": 0, "retries": 0, "pages": 0, "succeeded": 0, "failed": 0}
