import asyncio
import signal
from typing import Optional

from timetable_sync.api.schedules_api import create_app
from timetable_sync.models.model import StatusEvent
from timetable_sync.remote.http_store import HttpScheduleStore
from timetable_sync.remote.remote_store import RemoteScheduleStore
from timetable_sync.remote.store_errors import StoreUnconfigured
from timetable_sync.sql.local_cache import LocalCache
from timetable_sync.sql_orm.kv.kv_entry_orm import initialize_kv_store
from timetable_sync.sync.engine import SyncEngine
from timetable_sync.utils.config import AppConfig, load_config
from timetable_sync.utils.logging_config import ScheduleSystemLogger, get_main_logger

logger = get_main_logger()


def setup() -> AppConfig:
    load_config()
    ScheduleSystemLogger.setup_logging(force=True)
    return AppConfig.from_env()


def build_store(config: AppConfig) -> Optional[RemoteScheduleStore]:
    """
    Create the remote adapter for the configured backend.
    Returns None (local-only operation) when the backend is not configured.
    """
    if config.backend == "local":
        logger.info("Local backend selected - schedules stay on this device")
        return None

    if config.backend == "firestore":
        # firebase-admin is only needed by this backend
        from timetable_sync.firestore.schedule_firestore import FirestoreScheduleStore, init_firestore

        try:
            db = init_firestore(config.service_account_path)
        except StoreUnconfigured as e:
            logger.warning(f"{e} Continuing with local storage only")
            return None
        return FirestoreScheduleStore(
            db,
            collection=config.firestore_collection,
            document=config.firestore_document,
        )

    if not config.api_url:
        logger.warning("SCHEDULE_API_URL not set. Continuing with local storage only")
        return None
    return HttpScheduleStore(
        base_url=config.api_url,
        endpoint=config.api_path,
        poll_interval=config.poll_interval,
        timeout=config.http_timeout,
    )


def build_engine(config: AppConfig) -> SyncEngine:
    return SyncEngine(
        store=build_store(config),
        local_cache=LocalCache(config.local_cache_path),
        grid=config.grid,
        save_debounce=config.save_debounce,
        self_write_grace=config.self_write_grace,
    )


async def run_client(config: AppConfig):
    engine = build_engine(config)

    def status_changed(event: StatusEvent):
        logger.info(f"Sync status: {event.status.value} - {event.message}")

    def remote_updated(teachers):
        logger.info(f"Schedules updated from cloud: {', '.join(teachers) or 'no teacher changed'}")

    engine.on_status(status_changed)
    engine.on_remote_update(remote_updated)
    await engine.init()

    if config.grid.teachers:
        engine.select_teacher(config.grid.teachers[0])

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info("Sync client running. Press Ctrl+C to stop")
    try:
        await stop.wait()
    finally:
        logger.info("Shutting down sync client")
        engine.flush_and_save_sync()
        await engine.dispose()


def main_client():
    config = setup()
    asyncio.run(run_client(config))


def main_api():
    config = setup()
    kv_store = None
    if config.kv_database_url:
        kv_store = initialize_kv_store(config.kv_database_url)
    else:
        logger.warning("No KV database bound - GET/POST /api/schedules will answer 503")

    app = create_app(kv_store)
    logger.info(f"Serving schedules API on {config.api_host}:{config.api_port}")
    app.run(host=config.api_host, port=config.api_port)


if __name__ == "__main__":
    main_client()
