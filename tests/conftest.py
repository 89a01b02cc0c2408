"""
Shared fakes for the batch engine tests.

FakeAPI stands in for BatchAPI: every post_batch call is recorded and answered
by a handler `(requests, call_no) -> responses`. SleepRecorder replaces
asyncio.sleep so backoff delays can be asserted without waiting.
"""
from __future__ import annotations

import pytest


class FakeAPI:
    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    async def post_batch(self, requests):
        self.calls.append([dict(r) for r in requests])
        return self.handler(requests, len(self.calls))


class SleepRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def page(req_id, items, next_link=None, status=200):
    body = {"value": list(items)}
    if next_link:
        body["@odata.nextLink"] = next_link
    return {"id": req_id, "status": status, "body": body, "headers": {}}


def error(req_id, status, code="Request_ResourceNotFound", message="not found", headers=None):
    return {
        "id": req_id,
        "status": status,
        "body": {"error": {"code": code, "message": message}},
        "headers": headers or {},
    }


@pytest.fixture
def sleeper():
    return SleepRecorder()
