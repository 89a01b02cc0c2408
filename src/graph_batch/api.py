"""
Async wrapper around the `$batch` endpoint.

Provides a typed interface for:
- Posting one envelope of at most 20 sub-requests (`post_batch`)

Responses come back in arbitrary order and are correlated by id, never by
position. A body that is not JSON, or has no `responses` list, is treated
like any other failure of the envelope call: a TransportError.
"""
from __future__ import annotations
from typing import List

from http_client import HttpClient, TransportError

from .models import SubRequest, SubResponse
from .utils import MAX_BATCH_SIZE

BATCH_PATH = "/$batch"

class BatchAPI:

    def __init__(self, http: HttpClient):
        self.http = http

    async def post_batch(self, requests: List[SubRequest]) -> List[SubResponse]:
        if not 0 < len(requests) <= MAX_BATCH_SIZE:
            raise ValueError(f"a batch carries 1..{MAX_BATCH_SIZE} requests, got {len(requests)}")
        resp = await self.http.request("POST", BATCH_PATH, json={"requests": requests})
        try:
            payload = resp.json()
        except ValueError as e:
            raise TransportError(f"non-JSON batch response: {resp.text[:200]}", status=resp.status_code) from e
        responses = payload.get("responses") if isinstance(payload, dict) else None
        if not isinstance(responses, list):
            raise TransportError("batch response has no 'responses' list", status=resp.status_code, detail=payload)
        return responses
