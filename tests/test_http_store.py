import json

import httpx
import pytest

from timetable_sync.remote.http_store import HttpScheduleStore
from timetable_sync.remote.store_errors import (
    StoreBadRequest,
    StoreInternalError,
    StoreUnconfigured,
    StoreUnreachable,
)

BASE_URL = "https://timetable.test"


def make_store(handler, **kwargs) -> HttpScheduleStore:
    return HttpScheduleStore(BASE_URL, transport=httpx.MockTransport(handler), **kwargs)


async def test_fetch_all_normalizes_schedules():
    def handler(request: httpx.Request):
        assert request.method == "GET"
        assert request.url.path == "/api/schedules"
        return httpx.Response(200, json={
            "success": True,
            "schedules": {"Alice": {"Monday-8": "available", "Monday-9": None}},
            "lastUpdated": "2024-05-01T10:00:00.000Z",
        })

    store = make_store(handler)
    result = await store.fetch_all()
    await store.aclose()

    assert result.schedules == {"Alice": {"Monday-8": "available"}}
    assert result.version == "2024-05-01T10:00:00.000Z"


async def test_fetch_all_on_empty_store():
    store = make_store(lambda request: httpx.Response(200, json={"success": True, "schedules": {}, "lastUpdated": None}))

    result = await store.fetch_all()
    await store.aclose()

    assert result.schedules == {}
    assert result.version is None


async def test_unconfigured_backend_is_distinct_from_empty():
    body = {"success": False, "error": "KV_SCHEDULES not configured. Set KV_DATABASE_URL"}
    store = make_store(lambda request: httpx.Response(503, json=body))

    with pytest.raises(StoreUnconfigured, match="not configured"):
        await store.fetch_all()
    await store.aclose()


async def test_network_failure_is_unreachable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    store = make_store(handler)
    with pytest.raises(StoreUnreachable):
        await store.fetch_all()
    with pytest.raises(StoreUnreachable):
        await store.save_all({"Alice": {}})
    await store.aclose()


async def test_missing_api_is_unreachable():
    store = make_store(lambda request: httpx.Response(404, text="Not Found"))

    with pytest.raises(StoreUnreachable, match="API not found"):
        await store.fetch_all()
    await store.aclose()


async def test_save_all_posts_full_snapshot():
    seen = []

    def handler(request: httpx.Request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={
            "success": True,
            "lastUpdated": "2024-05-01T10:00:01.000Z",
            "message": "Schedules saved successfully",
        })

    store = make_store(handler)
    version = await store.save_all({"Alice": {"Monday-8": "available"}, "Bob": {}})
    await store.aclose()

    assert version == "2024-05-01T10:00:01.000Z"
    assert seen == [{"schedules": {"Alice": {"Monday-8": "available"}, "Bob": {}}}]


async def test_rejected_save_is_bad_request():
    store = make_store(lambda request: httpx.Response(400, json={"success": False, "error": "Schedules data required"}))

    with pytest.raises(StoreBadRequest, match="Schedules data required"):
        await store.save_all({})
    await store.aclose()


async def test_server_failure_keeps_details():
    body = {"success": False, "error": "disk full", "details": "Traceback ..."}
    store = make_store(lambda request: httpx.Response(500, json=body))

    with pytest.raises(StoreInternalError) as excinfo:
        await store.save_all({"Alice": {}})
    await store.aclose()

    assert str(excinfo.value) == "disk full"
    assert excinfo.value.details == "Traceback ..."


async def test_malformed_response_is_internal_error():
    store = make_store(lambda request: httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(StoreInternalError):
        await store.fetch_all()
    await store.aclose()


def test_save_all_blocking_uses_a_sync_client():
    seen = []

    def handler(request: httpx.Request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"success": True, "lastUpdated": "v-exit"})

    store = make_store(handler)

    assert store.save_all_blocking({"Alice": {"Monday-8": "navy"}}) == "v-exit"
    assert seen == [{"schedules": {"Alice": {"Monday-8": "navy"}}}]


async def test_snapshots_poll_with_cache_busting():
    requests = []

    def handler(request: httpx.Request):
        requests.append(request)
        if len(requests) == 1:
            return httpx.Response(500, json={"success": False, "error": "flaky"})
        return httpx.Response(200, json={"success": True, "schedules": {"Bob": {}}, "lastUpdated": "v2"})

    store = make_store(handler, poll_interval=0)
    snapshots = store.snapshots()
    result = await snapshots.__anext__()
    await snapshots.aclose()
    await store.aclose()

    # The failed poll is skipped, the next tick delivers
    assert result.version == "v2"
    assert len(requests) == 2
    assert "t" in requests[1].url.params
    assert requests[1].headers["Cache-Control"] == "no-cache"
