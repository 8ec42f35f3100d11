import asyncio
from typing import AsyncIterator, Optional

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud.firestore_v1 import Client as FirestoreClient
from pydantic import ValidationError

from timetable_sync.constants import SCHEDULE_COLLECTION_PATH, SCHEDULE_DOCUMENT_ID
from timetable_sync.json.schedule_parser import parse_schedule_document
from timetable_sync.models.model import FetchResult, ScheduleMap
from timetable_sync.remote.remote_store import RemoteScheduleStore
from timetable_sync.remote.store_errors import (
    StoreInternalError,
    StoreUnconfigured,
    StoreUnreachable,
)
from timetable_sync.utils.logging_config import get_store_logger, log_store_operation
from timetable_sync.utils.time_utils import utc_timestamp

logger = get_store_logger()


def init_firestore(service_account_path: Optional[str]) -> FirestoreClient:
    if not service_account_path:
        raise StoreUnconfigured("Firestore not configured. Set SERVICE_ACCOUNT_PATH to a service account file.")
    try:
        cred = credentials.Certificate(service_account_path)
        app = firebase_admin.initialize_app(cred)
    except (IOError, ValueError) as e:
        raise StoreUnconfigured(f"Firestore not configured: {e}") from e
    return firestore.client(app=app)


def _result_from_snapshot(doc_snapshot) -> FetchResult:
    if not doc_snapshot.exists:
        return FetchResult(schedules={}, version=None)
    try:
        document = parse_schedule_document(doc_snapshot.to_dict() or {})
    except ValidationError as e:
        raise StoreInternalError(f"Malformed schedule document: {e}") from e
    return FetchResult(schedules=document.schedules.root, version=document.last_updated)


class FirestoreScheduleStore(RemoteScheduleStore):
    """
    Subscribe variant: one document holds {schedules, lastUpdated}, written
    wholesale on every save and observed through a snapshot listener.
    """

    name = "firestore"

    def __init__(
        self,
        db: FirestoreClient,
        collection: str = SCHEDULE_COLLECTION_PATH,
        document: str = SCHEDULE_DOCUMENT_ID,
    ):
        self.collection = collection
        self.document = document
        self.doc_ref = db.collection(collection).document(document)

    def _get(self) -> FetchResult:
        try:
            doc_snapshot = self.doc_ref.get()
        except (google_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError) as e:
            raise StoreUnreachable(f"Reading {self.collection}/{self.document} failed: {e}") from e
        return _result_from_snapshot(doc_snapshot)

    def _set(self, schedules: ScheduleMap) -> str:
        version = utc_timestamp()
        try:
            # set() without merge replaces the document wholesale
            self.doc_ref.set({"schedules": schedules, "lastUpdated": version})
        except (google_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError) as e:
            raise StoreUnreachable(f"Writing {self.collection}/{self.document} failed: {e}") from e
        return version

    async def fetch_all(self) -> FetchResult:
        result = await asyncio.to_thread(self._get)
        log_store_operation(
            logger, "FETCH", self.name, success=True,
            details=f"teachers={len(result.schedules)}, lastUpdated={result.version}"
        )
        return result

    async def save_all(self, schedules: ScheduleMap) -> Optional[str]:
        version = await asyncio.to_thread(self._set, schedules)
        log_store_operation(logger, "SAVE", self.name, success=True, details=f"lastUpdated={version}")
        return version

    def save_all_blocking(self, schedules: ScheduleMap) -> Optional[str]:
        version = self._set(schedules)
        log_store_operation(logger, "SAVE_BLOCKING", self.name, success=True, details=f"lastUpdated={version}")
        return version

    async def snapshots(self) -> AsyncIterator[FetchResult]:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        # Runs on the Firestore listener thread
        def on_snapshot(doc_snapshots, changes, read_time):
            for doc_snapshot in doc_snapshots:
                try:
                    result = _result_from_snapshot(doc_snapshot)
                except StoreInternalError as e:
                    logger.error(f"Ignoring snapshot: {e}")
                    continue
                loop.call_soon_threadsafe(queue.put_nowait, result)

        watch = self.doc_ref.on_snapshot(on_snapshot)
        logger.info(f"Listening for Firestore changes on {self.collection}/{self.document}")
        try:
            while True:
                yield await queue.get()
        finally:
            watch.unsubscribe()
            logger.info(f"Stopped listening on {self.collection}/{self.document}")
