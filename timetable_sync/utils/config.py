import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from timetable_sync.constants import (
    API_ENDPOINT,
    DEFAULT_LOCAL_CACHE_PATH,
    END_HOUR,
    HTTP_TIMEOUT,
    POLL_INTERVAL,
    SAVE_DEBOUNCE,
    SCHEDULE_COLLECTION_PATH,
    SCHEDULE_DOCUMENT_ID,
    SELF_WRITE_GRACE,
    START_HOUR,
    TEACHERS,
)
from timetable_sync.models.model import ScheduleGrid
from timetable_sync.sql_orm.connection.sqlalchemy_engine import build_postgres_url

BACKENDS = ("http", "firestore", "local")


def load_config():
    """Load environment configuration from the .env file named by ENV_FILE, when set."""
    env_file = os.getenv("ENV_FILE")
    if env_file is not None:
        load_dotenv(dotenv_path=env_file)


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _get_teachers() -> List[str]:
    raw = os.getenv("TEACHERS")
    if not raw:
        return list(TEACHERS)
    return [name.strip() for name in raw.split(",") if name.strip()]


def load_kv_database_url() -> Optional[str]:
    """
    Resolve the KV binding of the schedules API.

    KV_DATABASE_URL wins; otherwise a Postgres URL is assembled from POSTGRES_*.
    Returns None when neither is set, which leaves the API unconfigured.
    """
    database_url = os.getenv("KV_DATABASE_URL")
    if database_url:
        return database_url

    postgres_user = os.getenv("POSTGRES_USER")
    postgres_password = os.getenv("POSTGRES_PASSWORD")
    postgres_db = os.getenv("POSTGRES_DB")
    postgres_host = os.getenv("POSTGRES_HOST")

    if not (postgres_user and postgres_db and postgres_host):
        return None
    if postgres_password is None:
        raise ValueError("Postgres Password not set")

    return build_postgres_url(
        user=postgres_user,
        password=postgres_password,
        host=postgres_host,
        port=_get_int("POSTGRES_PORT", 5432),
        database=postgres_db,
    )


@dataclass
class AppConfig:
    backend: str = "http"
    api_url: Optional[str] = None
    api_path: str = API_ENDPOINT
    service_account_path: Optional[str] = None
    firestore_collection: str = SCHEDULE_COLLECTION_PATH
    firestore_document: str = SCHEDULE_DOCUMENT_ID
    local_cache_path: str = DEFAULT_LOCAL_CACHE_PATH
    poll_interval: float = POLL_INTERVAL
    save_debounce: float = SAVE_DEBOUNCE
    self_write_grace: float = SELF_WRITE_GRACE
    http_timeout: float = HTTP_TIMEOUT
    grid: ScheduleGrid = field(default_factory=ScheduleGrid)
    kv_database_url: Optional[str] = None
    api_host: str = "0.0.0.0"
    api_port: int = 8788

    @classmethod
    def from_env(cls) -> "AppConfig":
        """
        Build the configuration from environment variables.

        Raises:
            ValueError: on an unknown backend or a malformed numeric value
        """
        backend = (os.getenv("SCHEDULE_BACKEND") or "http").lower()
        if backend not in BACKENDS:
            raise ValueError(f"SCHEDULE_BACKEND must be one of {', '.join(BACKENDS)}, got {backend!r}")

        grid = ScheduleGrid(
            start_hour=_get_int("START_HOUR", START_HOUR),
            end_hour=_get_int("END_HOUR", END_HOUR),
            teachers=_get_teachers(),
        )

        return cls(
            backend=backend,
            api_url=os.getenv("SCHEDULE_API_URL") or None,
            api_path=os.getenv("SCHEDULE_API_PATH") or API_ENDPOINT,
            service_account_path=os.getenv("SERVICE_ACCOUNT_PATH") or None,
            firestore_collection=os.getenv("FIRESTORE_COLLECTION") or SCHEDULE_COLLECTION_PATH,
            firestore_document=os.getenv("FIRESTORE_DOCUMENT") or SCHEDULE_DOCUMENT_ID,
            local_cache_path=os.getenv("LOCAL_CACHE_PATH") or DEFAULT_LOCAL_CACHE_PATH,
            poll_interval=_get_float("POLL_INTERVAL_SECONDS", POLL_INTERVAL),
            save_debounce=_get_float("SAVE_DEBOUNCE_SECONDS", SAVE_DEBOUNCE),
            self_write_grace=_get_float("SELF_WRITE_GRACE_SECONDS", SELF_WRITE_GRACE),
            http_timeout=_get_float("HTTP_TIMEOUT_SECONDS", HTTP_TIMEOUT),
            grid=grid,
            kv_database_url=load_kv_database_url(),
            api_host=os.getenv("API_HOST") or "0.0.0.0",
            api_port=_get_int("API_PORT", 8788),
        )
