"""
Remote client contract and its HTTP implementation.

The server is authoritative.  Every transport failure, non-2xx status or
``{"success": false}`` body surfaces as ``NetworkError`` so the calling
pipeline can stop cleanly and retry at the next checkpoint.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any

import httpx
from pydantic import ValidationError

from attendsync.core.config import Settings, settings
from attendsync.core.exceptions import NetworkError
from attendsync.schemas.attendance import AttendanceRecord, DailySummary
from attendsync.schemas.sync import FullRange, PushResult, ServerEdits

logger = logging.getLogger(__name__)


class RemoteClient(ABC):
    @abstractmethod
    async def push_attendance(self, records: list[AttendanceRecord]) -> PushResult: ...

    @abstractmethod
    async def push_summary(self, summaries: list[DailySummary]) -> PushResult: ...

    @abstractmethod
    async def pull_server_edits(self, since: datetime | None) -> ServerEdits: ...

    @abstractmethod
    async def pull_full_range(self, start: date, end: date) -> FullRange: ...

    async def acknowledge_server_edits(self, edited_ids: list[int], deleted_ids: list[int]) -> None:
        """Tell the server which edits were applied locally.  Optional."""
        return None

    async def aclose(self) -> None:
        return None


def _as_server_record(raw: dict[str, Any]) -> AttendanceRecord:
    record = AttendanceRecord.model_validate(raw)
    return record.model_copy(update={"sync_status": "synced", "source": "server"})


def _attendance_payload(record: AttendanceRecord) -> dict[str, Any]:
    return record.model_dump(mode="json", exclude={"sync_status", "source"})


def _summary_payload(summary: DailySummary) -> dict[str, Any]:
    return summary.model_dump(mode="json", exclude={"sync_status"})


def _parse_push_result(body: Any, sent: int) -> PushResult:
    if not isinstance(body, dict):
        return PushResult(success=True, count=sent)
    if body.get("success") is False:
        raise NetworkError(body.get("error") or body.get("message") or "server rejected the batch")

    accepted = body.get("accepted_ids", body.get("acceptedIds"))
    id_map = body.get("id_map", body.get("idMap")) or {}
    return PushResult(
        success=True,
        count=int(body.get("count", len(accepted) if accepted is not None else sent)),
        accepted_ids=[int(i) for i in accepted] if accepted is not None else None,
        id_map={int(k): int(v) for k, v in id_map.items()},
        message=body.get("message"),
    )


class HttpRemoteClient(RemoteClient):
    """RemoteClient backed by ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        edit_limit: int = 1000,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.edit_limit = edit_limit
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, cfg: Settings | None = None) -> "HttpRemoteClient":
        cfg = cfg or settings
        return cls(cfg.REMOTE_BASE_URL, timeout=cfg.REMOTE_TIMEOUT_SEC, edit_limit=cfg.REMOTE_EDIT_LIMIT)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Remote %s %s failed with status %d: %s",
                method, path, exc.response.status_code, exc.response.text[:200],
            )
            raise NetworkError(
                f"Server responded with status {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Remote %s %s unreachable: %s", method, path, exc)
            raise NetworkError(f"Remote server unreachable: {exc}") from exc

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise NetworkError(f"Invalid JSON from {path}") from exc

    async def push_attendance(self, records: list[AttendanceRecord]) -> PushResult:
        body = await self._request(
            "POST",
            "/api/attendance",
            json={"attendance_data": [_attendance_payload(r) for r in records]},
        )
        return _parse_push_result(body, len(records))

    async def push_summary(self, summaries: list[DailySummary]) -> PushResult:
        body = await self._request(
            "POST",
            "/api/dailysummary",
            json={"daily_summary_data": [_summary_payload(s) for s in summaries]},
        )
        return _parse_push_result(body, len(summaries))

    async def pull_server_edits(self, since: datetime | None) -> ServerEdits:
        params: dict[str, Any] = {"limit": self.edit_limit}
        if since is not None:
            params["since"] = since.isoformat()

        body = await self._request("GET", "/api/attendanceEdit", params=params)
        if not isinstance(body, dict):
            raise NetworkError("Unexpected server-edit response shape")
        if body.get("success") is False:
            raise NetworkError(body.get("error") or "Server returned error")

        data = body.get("data", body)
        try:
            updated = [_as_server_record(raw) for raw in data.get("edited", [])]
        except ValidationError as exc:
            raise NetworkError(f"Malformed edited record from server: {exc}") from exc

        deleted: list[int] = []
        for item in data.get("deleted", []):
            deleted.append(int(item["id"]) if isinstance(item, dict) else int(item))
        return ServerEdits(updated=updated, deleted_ids=deleted)

    async def pull_full_range(self, start: date, end: date) -> FullRange:
        body = await self._request(
            "GET",
            "/api/attendance/range",
            params={"start": start.isoformat(), "end": end.isoformat()},
        )
        if not isinstance(body, dict) or body.get("success") is False:
            raise NetworkError("Server could not return the requested range")

        data = body.get("data", body)
        try:
            return FullRange(
                attendance=[_as_server_record(raw) for raw in data.get("attendance", [])],
                summary=[DailySummary.model_validate(raw) for raw in data.get("summary", [])],
            )
        except ValidationError as exc:
            raise NetworkError(f"Malformed range data from server: {exc}") from exc

    async def acknowledge_server_edits(self, edited_ids: list[int], deleted_ids: list[int]) -> None:
        if not edited_ids and not deleted_ids:
            return
        body = await self._request(
            "POST",
            "/api/attendanceEdit/mark-synced",
            json={"editedIds": edited_ids, "deletedIds": deleted_ids},
        )
        if isinstance(body, dict) and body.get("success") is False:
            raise NetworkError(body.get("error") or "Server failed to mark edits as synced")

    async def aclose(self) -> None:
        await self._client.aclose()
