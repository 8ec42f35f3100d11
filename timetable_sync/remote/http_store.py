import asyncio
import time
from typing import AsyncIterator, Optional

import httpx
from pydantic import ValidationError

from timetable_sync.constants import API_ENDPOINT, HTTP_TIMEOUT, POLL_INTERVAL
from timetable_sync.json.schedule_parser import SchedulesResponseJson, parse_schedules_response
from timetable_sync.models.model import FetchResult, ScheduleMap
from timetable_sync.remote.remote_store import RemoteScheduleStore
from timetable_sync.remote.store_errors import (
    StoreBadRequest,
    StoreError,
    StoreInternalError,
    StoreUnconfigured,
    StoreUnreachable,
)
from timetable_sync.utils.logging_config import get_store_logger, log_store_operation

logger = get_store_logger()

JSON_HEADERS = {"Content-Type": "application/json"}


def _error_for_response(response: httpx.Response) -> StoreError:
    """Translate a failed API response into the store error taxonomy."""
    error_details = f"HTTP {response.status_code}"
    details = None
    try:
        error_data = response.json()
        if isinstance(error_data, dict) and error_data.get("error"):
            error_details = error_data["error"]
            details = error_data.get("details")
    except ValueError:
        pass

    if response.status_code == 503 or "not configured" in error_details:
        return StoreUnconfigured(error_details)
    if response.status_code == 400:
        return StoreBadRequest(error_details)
    if response.status_code == 404:
        return StoreUnreachable(f"API not found ({error_details})")
    if response.status_code >= 500:
        return StoreInternalError(error_details, details)
    return StoreUnreachable(error_details)


def _parse_body(response: httpx.Response) -> SchedulesResponseJson:
    if not response.is_success:
        raise _error_for_response(response)
    try:
        data = parse_schedules_response(response.json())
    except (ValueError, ValidationError) as e:
        raise StoreInternalError(f"Malformed response from schedules API: {e}") from e
    if not data.success:
        error = data.error or "Unknown error"
        if "not configured" in error:
            raise StoreUnconfigured(error)
        raise StoreInternalError(error, data.details)
    return data


class HttpScheduleStore(RemoteScheduleStore):
    """
    Poll variant: talks to the schedules API and re-reads it on a fixed interval.
    """

    name = "http"

    def __init__(
        self,
        base_url: str,
        endpoint: str = API_ENDPOINT,
        poll_interval: float = POLL_INTERVAL,
        timeout: float = HTTP_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.endpoint = endpoint
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._transport = transport
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=JSON_HEADERS,
            transport=transport,
        )

    async def fetch_all(self, bust_cache: bool = False) -> FetchResult:
        params = {"t": str(int(time.time() * 1000))} if bust_cache else None
        headers = {"Cache-Control": "no-cache"} if bust_cache else None
        try:
            response = await self._client.get(self.endpoint, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise StoreUnreachable(f"GET {self.endpoint} failed: {e}") from e

        data = _parse_body(response)
        schedules = data.schedules.root if data.schedules is not None else {}
        logger.debug(f"Fetched {len(schedules)} teachers, lastUpdated={data.last_updated}")
        return FetchResult(schedules=schedules, version=data.last_updated)

    async def save_all(self, schedules: ScheduleMap) -> Optional[str]:
        try:
            response = await self._client.post(self.endpoint, json={"schedules": schedules})
        except httpx.HTTPError as e:
            raise StoreUnreachable(f"POST {self.endpoint} failed: {e}") from e

        data = _parse_body(response)
        log_store_operation(logger, "SAVE", self.name, success=True, details=f"lastUpdated={data.last_updated}")
        return data.last_updated

    def save_all_blocking(self, schedules: ScheduleMap) -> Optional[str]:
        try:
            with httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=JSON_HEADERS,
                transport=self._transport,
            ) as client:
                response = client.post(self.endpoint, json={"schedules": schedules})
        except httpx.HTTPError as e:
            raise StoreUnreachable(f"POST {self.endpoint} failed: {e}") from e

        data = _parse_body(response)
        log_store_operation(logger, "SAVE_BLOCKING", self.name, success=True, details=f"lastUpdated={data.last_updated}")
        return data.last_updated

    async def snapshots(self) -> AsyncIterator[FetchResult]:
        logger.info(f"Starting polling for updates every {self.poll_interval} seconds")
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                yield await self.fetch_all(bust_cache=True)
            except StoreError as e:
                # Polling failures stay quiet; the next tick retries
                logger.warning(f"Polling error: {e}")

    async def aclose(self) -> None:
        await self._client.aclose()
