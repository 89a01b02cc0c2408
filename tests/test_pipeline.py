import json
import httpx
import pytest
from http_client import HttpClient, TransportError
from graph_batch.pipeline import endpoint_for, invoke_batch, run_batch, to_sub_request
from graph_batch.utils import BatchRequestError

from conftest import FakeAPI, error, page

NEXT = "https://graph.microsoft.com/v1.0"

def users(n):
    return [{"id": str(i), "method": "GET", "url": f"/users/{i}/messages"} for i in range(1, n + 1)]

@pytest.mark.asyncio
async def test_25_requests_take_two_calls_and_yield_25_entries(sleeper):
    api = FakeAPI(lambda rs, n: [page(r["id"], [f"item-{r['id']}"]) for r in rs])
    results, stats = await run_batch(api, users(25), sleep=sleeper)

    assert [len(call) for call in api.calls] == [20, 5]
    assert [r["id"] for r in results] == [str(i) for i in range(1, 26)]
    assert all(r["status"] == 200 and r["response"]["value"] == [f"item-{r['id']}"] for r in results)
    assert stats["http_calls"] == 2
    assert stats["sub_requests"] == 25
    assert stats["succeeded"] == 25 and stats["failed"] == 0

@pytest.mark.asyncio
async def test_first_page_and_continuation_are_concatenated(sleeper):
    def handler(rs, n):
        if n == 1:
            return [page("1", ["a", "b"], next_link=f"{NEXT}/users/1/messages?$skiptoken=t")]
        return [page(rs[0]["id"], ["c"])]

    api = FakeAPI(handler)
    results, stats = await run_batch(api, users(1), sleep=sleeper)

    assert results == [{"id": "1", "status": 200, "response": {"value": ["a", "b", "c"]}}]
    assert api.calls[1] == [{"id": "nl_0", "method": "GET", "url": "/users/1/messages?$skiptoken=t"}]
    assert stats["pages"] == 1

@pytest.mark.asyncio
async def test_one_429_then_200_in_a_mixed_group(sleeper):
    def handler(rs, n):
        return [error("2", 429, "TooManyRequests", "throttled") if r["id"] == "2" and n == 1
                else page(r["id"], [r["id"]]) for r in rs]

    api = FakeAPI(handler)
    results, stats = await run_batch(api, users(3), sleep=sleeper)

    assert len(api.calls) == 2
    assert [r["id"] for r in api.calls[1]] == ["2"]
    assert [(r["id"], r["response"]["value"]) for r in results] == [("1", ["1"]), ("2", ["2"]), ("3", ["3"])]
    assert stats["retries"] == 1

@pytest.mark.asyncio
async def test_failures_keep_their_place_in_input_order(sleeper):
    def handler(rs, n):
        return [error(r["id"], 404) if r["id"] == "2" else error(r["id"], 503) if r["id"] == "3"
                else page(r["id"], []) for r in rs]

    results, stats = await run_batch(FakeAPI(handler), users(3), max_retries=2, sleep=sleeper)

    assert [r["id"] for r in results] == ["1", "2", "3"]
    assert results[1]["errorCode"] == "Request_ResourceNotFound"
    assert results[2]["errorCode"] == "RetriesExhausted"
    assert stats["succeeded"] == 1 and stats["failed"] == 2

@pytest.mark.asyncio
async def test_global_parameters_and_body_reach_the_envelope(sleeper):
    requests = [
        {"id": "1", "method": "get", "url": "users", "queryParameters": {"$select": "id"}},
        {"id": "2", "method": "POST", "url": "/groups", "body": {"displayName": "g"}},
    ]
    api = FakeAPI(lambda rs, n: [page(r["id"], []) for r in rs])
    await run_batch(api, requests, global_parameters={"$select": "displayName", "$top": "5"}, sleep=sleeper)

    first, second = api.calls[0]
    assert first == {"id": "1", "method": "GET", "url": "/users?%24select=id&%24top=5"}
    assert second == {
        "id": "2",
        "method": "POST",
        "url": "/groups?%24select=displayName&%24top=5",
        "body": {"displayName": "g"},
        "headers": {"Content-Type": "application/json"},
    }

def test_sub_request_keeps_caller_headers():
    sub = to_sub_request({"id": "x", "method": "PATCH", "url": "/me", "body": "{}",
                          "headers": {"content-type": "text/plain"}})
    assert sub["headers"] == {"content-type": "text/plain"}

@pytest.mark.asyncio
async def test_group_delay_only_between_groups(sleeper):
    api = FakeAPI(lambda rs, n: [page(r["id"], []) for r in rs])
    await run_batch(api, users(45), group_delay=1.5, sleep=sleeper)
    assert sleeper.calls == [1.5, 1.5]

@pytest.mark.asyncio
async def test_raw_json_output(sleeper):
    api = FakeAPI(lambda rs, n: [page(r["id"], [{"n": r["id"]}]) for r in rs])
    output, _ = await run_batch(api, users(2), as_json=True, sleep=sleeper)
    assert isinstance(output, str)
    assert json.loads(output) == [
        {"id": "1", "status": 200, "response": {"value": [{"n": "1"}]}},
        {"id": "2", "status": 200, "response": {"value": [{"n": "2"}]}},
    ]

@pytest.mark.asyncio
async def test_invalid_input_makes_no_calls(sleeper):
    api = FakeAPI(lambda rs, n: [])
    with pytest.raises(BatchRequestError):
        await run_batch(api, [], sleep=sleeper)
    with pytest.raises(BatchRequestError):
        await run_batch(api, users(1) + users(1), sleep=sleeper)
    with pytest.raises(BatchRequestError):
        await run_batch(api, [{"id": "1", "url": "/me"}], sleep=sleeper)
    with pytest.raises(BatchRequestError):
        await run_batch(api, ["not-a-request"], sleep=sleeper)
    assert api.calls == []

@pytest.mark.asyncio
async def test_transport_failure_aborts_the_run(sleeper):
    class FlakyAPI(FakeAPI):
        async def post_batch(self, requests):
            if self.calls:
                raise TransportError("POST /$batch returned 502", status=502)
            return await super().post_batch(requests)

    api = FlakyAPI(lambda rs, n: [page(r["id"], []) for r in rs])
    with pytest.raises(TransportError):
        await run_batch(api, users(30), sleep=sleeper)

@pytest.mark.asyncio
async def test_invoke_batch_over_http():
    seen = []

    def handler(request):
        body = json.loads(request.content)
        seen.append((str(request.url), request.headers["Authorization"], body))
        return httpx.Response(200, json={"responses": [
            {"id": r["id"], "status": 200, "body": {"value": [r["url"]]}} for r in body["requests"]
        ]})

    client = HttpClient(base_url=endpoint_for(beta=True), access_token="secret",
                        transport=httpx.MockTransport(handler))
    output, stats = await invoke_batch("secret", users(2), beta=True, http=client)

    assert [r["response"]["value"] for r in output] == [["/users/1/messages"], ["/users/2/messages"]]
    assert seen[0][0] == "https://graph.microsoft.com/beta/$batch"
    assert seen[0][1] == "Bearer secret"
    assert stats["http_calls"] == 1

@pytest.mark.asyncio
async def test_retried_request_keeps_its_resolved_url(sleeper):
    def handler(rs, n):
        return [error(r["id"], 503) if n == 1 else page(r["id"], []) for r in rs]

    requests = [{"id": "1", "method": "GET", "url": "/users", "queryParameters": {"$select": "id"}}]
    api = FakeAPI(handler)
    results, _ = await run_batch(api, requests, global_parameters={"$select": "mail", "$top": "5"}, sleep=sleeper)

    assert len(api.calls) == 2
    assert api.calls[0][0]["url"] == api.calls[1][0]["url"] == "/users?%24select=id&%24top=5"
    assert results[0]["status"] == 200
