import pytest

from timetable_sync.api.schedules_api import create_app
from timetable_sync.constants import KV_LAST_UPDATED_KEY, KV_SCHEDULES_KEY
from timetable_sync.sql_orm.kv.kv_entry_orm import initialize_kv_store

CORS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@pytest.fixture
def kv_store(tmp_path):
    return initialize_kv_store(f"sqlite:///{tmp_path / 'kv.db'}")


@pytest.fixture
def client(kv_store):
    return create_app(kv_store).test_client()


def assert_cors(response):
    for header, value in CORS.items():
        assert response.headers[header] == value


def test_get_on_empty_store(client):
    response = client.get("/api/schedules")

    assert response.status_code == 200
    assert response.get_json() == {"success": True, "schedules": {}, "lastUpdated": None}
    assert_cors(response)


def test_post_then_get(client):
    body = {"schedules": {"Alice": {"Monday-8": "available", "Monday-9": None}, "Bob": {}}}

    saved = client.post("/api/schedules", json=body)
    assert saved.status_code == 200
    saved_data = saved.get_json()
    assert saved_data["success"] is True
    assert saved_data["lastUpdated"].endswith("Z")
    assert_cors(saved)

    fetched = client.get("/api/schedules").get_json()
    assert fetched["schedules"] == {"Alice": {"Monday-8": "available"}, "Bob": {}}
    assert fetched["lastUpdated"] == saved_data["lastUpdated"]


def test_post_without_schedules_is_rejected(client, kv_store):
    response = client.post("/api/schedules", json={})

    assert response.status_code == 400
    assert response.get_json() == {"success": False, "error": "Schedules data required"}
    assert kv_store.get_text(KV_SCHEDULES_KEY) is None
    assert kv_store.get_text(KV_LAST_UPDATED_KEY) is None
    assert_cors(response)


def test_post_with_null_schedules_is_rejected(client):
    response = client.post("/api/schedules", json={"schedules": None})

    assert response.status_code == 400
    assert response.get_json()["error"] == "Schedules data required"


def test_post_non_json_is_rejected(client):
    response = client.post("/api/schedules", data="schedules", content_type="text/plain")

    assert response.status_code == 400
    assert response.get_json()["error"] == "Schedules data required"


def test_post_empty_map_clears_store(client):
    client.post("/api/schedules", json={"schedules": {"Alice": {"Monday-8": "available"}}})

    response = client.post("/api/schedules", json={"schedules": {}})

    assert response.status_code == 200
    assert client.get("/api/schedules").get_json()["schedules"] == {}


def test_post_invalid_state_is_rejected(client, kv_store):
    response = client.post("/api/schedules", json={"schedules": {"Alice": {"Monday-8": "purple"}}})

    assert response.status_code == 400
    data = response.get_json()
    assert data["error"] == "Invalid schedules data"
    assert "purple" in data["details"]
    assert kv_store.get_text(KV_SCHEDULES_KEY) is None


def test_unconfigured_store_answers_503():
    client = create_app(None).test_client()

    for response in (client.get("/api/schedules"), client.post("/api/schedules", json={"schedules": {}})):
        assert response.status_code == 503
        data = response.get_json()
        assert data["success"] is False
        assert "not configured" in data["error"]
        assert "KV_DATABASE_URL" in data["error"]
        assert_cors(response)


def test_store_failure_answers_500(client, kv_store, monkeypatch):
    def broken_put(values):
        raise RuntimeError("disk full")

    monkeypatch.setattr(kv_store, "put_many", broken_put)
    response = client.post("/api/schedules", json={"schedules": {"Alice": {}}})

    assert response.status_code == 500
    data = response.get_json()
    assert data["success"] is False
    assert data["error"] == "disk full"
    assert "RuntimeError" in data["details"]
    assert_cors(response)


def test_options_preflight(client):
    for path in ("/api/schedules", "/anything"):
        response = client.options(path)
        assert response.status_code == 200
        assert response.data == b""
        assert_cors(response)


def test_other_methods_are_not_allowed(client):
    response = client.put("/api/schedules", json={"schedules": {}})

    assert response.status_code == 405
    assert response.data == b"Method not allowed"
    assert_cors(response)


def test_post_unknown_slot_key_is_rejected(client, kv_store):
    response = client.post("/api/schedules", json={"schedules": {"Alice": {"Funday-99": "available"}}})

    assert response.status_code == 400
    assert response.get_json()["error"] == "Invalid schedules data"
    assert kv_store.get_text(KV_SCHEDULES_KEY) is None
