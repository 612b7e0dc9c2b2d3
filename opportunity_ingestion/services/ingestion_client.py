from __future__ import annotations

from functools import lru_cache
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from opportunity_ingestion.core.config import get_settings
from opportunity_ingestion.schemas.records import IngestionRecord, RecordStatus, RecordUpdate

logger = logging.getLogger(__name__)


class IngestionClientError(Exception):
    """Base error for calls against the upstream ingestion store."""


class IngestionUnavailableError(IngestionClientError):
    """Raised when the upstream store cannot be reached or fails internally."""


class IngestionNotFoundError(IngestionClientError):
    """Raised when the requested record does not exist upstream."""


class IngestionConflictError(IngestionClientError):
    """Raised when the upstream store rejects a mutation."""


class IngestionClient:
    """Async client for the upstream ``/opportunities/ingestion/temp`` resource.

    Every method issues exactly one request; retry and timeout policy is left
    to the HTTP layer configuration.
    """

    base_path = "/opportunities/ingestion/temp"

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        api_key_header: str = "X-API-Key",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = {api_key_header: api_key} if api_key else {}
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def list_records(self, status: RecordStatus | None = None, limit: int = 100) -> list[IngestionRecord]:
        params: dict[str, Any] = {"limit": limit}
        if status:
            params["status"] = status
        payload = await self._request("GET", self.base_path, params=params)
        if not isinstance(payload, list):
            raise IngestionUnavailableError("unexpected record list payload")
        records: list[IngestionRecord] = []
        for row in payload:
            try:
                records.append(IngestionRecord.model_validate(row))
            except ValidationError as exc:
                logger.warning(
                    "skipping malformed ingestion record record_id=%s errors=%s",
                    row.get("id") if isinstance(row, dict) else None,
                    exc.error_count(),
                )
        return records

    async def get_record(self, record_id: str) -> IngestionRecord:
        payload = await self._request("GET", f"{self.base_path}/{record_id}")
        return _record_from(payload)

    async def update_record(self, record_id: str, update: RecordUpdate) -> IngestionRecord:
        payload = await self._request("PATCH", f"{self.base_path}/{record_id}", json=update.to_payload())
        return _record_from(payload)

    async def promote_record(self, record_id: str, account_id: str | None = None) -> dict[str, Any]:
        body = {"account_id": account_id} if account_id else None
        payload = await self._request("POST", f"{self.base_path}/{record_id}/promote", json=body)
        return payload if isinstance(payload, dict) else {}

    async def refresh_record(self, record_id: str) -> IngestionRecord:
        payload = await self._request("POST", f"{self.base_path}/{record_id}/refresh")
        return _record_from(payload)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.request(method, f"{self.base_url}{path}", headers=self.headers, **kwargs)
                response.raise_for_status()
                if not response.content:
                    return None
                return response.json()
        except httpx.HTTPStatusError as exc:
            raise _map_status_error(exc.response) from exc
        except httpx.TransportError as exc:
            raise IngestionUnavailableError(f"ingestion store unreachable: {exc}") from exc
        except ValueError as exc:
            raise IngestionUnavailableError("ingestion store returned invalid JSON") from exc


def _record_from(payload: Any) -> IngestionRecord:
    try:
        return IngestionRecord.model_validate(payload)
    except ValidationError as exc:
        raise IngestionUnavailableError("ingestion store returned an unexpected record payload") from exc


def _map_status_error(response: httpx.Response) -> IngestionClientError:
    detail = _error_detail(response)
    if response.status_code == 404:
        return IngestionNotFoundError(detail or "record not found")
    if response.status_code >= 500:
        return IngestionUnavailableError(detail or f"ingestion store failed with status {response.status_code}")
    return IngestionConflictError(detail or f"ingestion store rejected request with status {response.status_code}")


def _error_detail(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict):
        detail = payload.get("detail")
        if isinstance(detail, str) and detail.strip():
            return detail.strip()
    return None


@lru_cache
def get_ingestion_client() -> IngestionClient:
    settings = get_settings()
    return IngestionClient(
        settings.upstream_base_url,
        api_key=settings.upstream_api_key,
        api_key_header=settings.upstream_api_key_header,
        timeout_seconds=settings.upstream_timeout_seconds,
    )
