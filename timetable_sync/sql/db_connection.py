import sqlite3

from timetable_sync.utils.logging_config import get_cache_logger

logger = get_cache_logger()


def get_db_connection(db_path: str) -> sqlite3.Connection:
    """
    Initialize and return a persistent SQLite connection.
    Suitable for use from scheduler jobs and worker threads.

    Parameters:
        db_path (str): Path to the SQLite database file.

    Returns:
        sqlite3.Connection: An open connection with `check_same_thread=False`.
    """
    conn = sqlite3.connect(db_path, check_same_thread=False)
    logger.info(f"[DB] Connected to {db_path}")
    return conn
