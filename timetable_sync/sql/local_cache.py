import json
import sqlite3
import threading
from typing import Optional

from pydantic import ValidationError

from timetable_sync.constants import STORAGE_KEY
from timetable_sync.json.schedule_parser import dump_schedules, parse_schedule_map
from timetable_sync.models.model import ScheduleMap
from timetable_sync.sql.db_connection import get_db_connection
from timetable_sync.utils.logging_config import get_cache_logger, log_store_operation

TABLE_NAME = "local_storage"
LOG_KEY = "local_cache"

logger = get_cache_logger()


class LocalCache:
    """
    On-device fallback holding the last known ScheduleMap in one named slot.

    Neither load() nor save() raises: storage failures and corrupt data are
    logged and treated as "no cached data".
    """

    def __init__(self, db_path: str, storage_key: str = STORAGE_KEY):
        self.db_path = db_path
        self.storage_key = storage_key
        self._lock = threading.Lock()
        self._connection: Optional[sqlite3.Connection] = None

    def _connect(self) -> sqlite3.Connection:
        if self._connection is None:
            self._connection = get_db_connection(self.db_path)
            self._connection.execute(f'''
                CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            ''')
            self._connection.commit()
        return self._connection

    def load(self) -> Optional[ScheduleMap]:
        try:
            with self._lock:
                cursor = self._connect().execute(
                    f"SELECT value FROM {TABLE_NAME} WHERE key = ?", (self.storage_key,)
                )
                row = cursor.fetchone()
            if row is None:
                logger.info(f"[{LOG_KEY}] No cached schedules under '{self.storage_key}'")
                return None
            schedules = parse_schedule_map(json.loads(row[0]))
        except (sqlite3.Error, json.JSONDecodeError, ValidationError) as e:
            log_store_operation(logger, "LOAD", LOG_KEY, success=False, error=e)
            return None

        log_store_operation(logger, "LOAD", LOG_KEY, success=True, details=f"{len(schedules)} teachers")
        return schedules

    def save(self, schedules: ScheduleMap) -> bool:
        try:
            payload = dump_schedules(schedules)
            with self._lock:
                conn = self._connect()
                conn.execute(f'''
                    INSERT INTO {TABLE_NAME} (key, value)
                    VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                ''', (self.storage_key, payload))
                conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as e:
            log_store_operation(logger, "SAVE", LOG_KEY, success=False, error=e)
            return False

        logger.debug(f"[{LOG_KEY}] Saved {len(schedules)} teachers ({len(payload)} bytes)")
        return True

    def close(self):
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
