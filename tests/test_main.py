from timetable_sync.main import build_engine, build_store
from timetable_sync.remote.http_store import HttpScheduleStore
from timetable_sync.utils.config import AppConfig


def test_local_backend_has_no_remote():
    assert build_store(AppConfig(backend="local")) is None


def test_http_backend_without_url_runs_local_only():
    assert build_store(AppConfig(backend="http", api_url=None)) is None


def test_http_backend():
    store = build_store(AppConfig(backend="http", api_url="https://timetable.test/", poll_interval=5))

    assert isinstance(store, HttpScheduleStore)
    assert store.base_url == "https://timetable.test"
    assert store.poll_interval == 5


def test_firestore_backend_without_credentials_runs_local_only():
    assert build_store(AppConfig(backend="firestore", service_account_path=None)) is None


def test_build_engine_wires_config(tmp_path):
    config = AppConfig(backend="local", local_cache_path=str(tmp_path / "cache.db"), save_debounce=0.3)

    engine = build_engine(config)

    assert engine.store is None
    assert engine.local_only is True
    assert engine.save_debounce == 0.3
    assert engine.local_cache.db_path == str(tmp_path / "cache.db")
