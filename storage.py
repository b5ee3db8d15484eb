"""Access to the hosted ``quiz_responses`` table.

``SupabaseResponseStore`` talks to the PostgREST endpoint of a Supabase
project; ``MemoryResponseStore`` keeps rows in process memory and backs local
development and the test-suite.
"""
from __future__ import annotations

import itertools
import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import requests

from quiz_data import DIAGNOSTIC_DEPARTMENT

logger = logging.getLogger(__name__)

MISSING_COLUMN_CODES = {"42703", "PGRST204"}


class StorageError(Exception):
    pass


class MissingColumnError(StorageError):
    pass


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_maybe_json(value: Any) -> Any:
    """Decode JSON strings, unwrapping double-encoded values; pass anything else through."""
    for _ in range(3):
        if not isinstance(value, str):
            return value
        try:
            value = json.loads(value)
        except (TypeError, ValueError):
            return value
    return value


class SupabaseResponseStore:
    def __init__(
        self,
        url: str,
        api_key: str,
        table: str = "quiz_responses",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.endpoint = f"{url.rstrip('/')}/rest/v1/{table}"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )

    def _request(self, method: str, params=None, payload=None, prefer: str | None = None):
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = self.session.request(
                method,
                self.endpoint,
                params=params,
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("%s %s failed: %s", method, self.endpoint, exc)
            raise StorageError(str(exc)) from exc

        if response.status_code >= 400:
            try:
                error = response.json()
            except ValueError:
                error = {"message": response.text}
            if not isinstance(error, dict):
                error = {"message": str(error)}
            code = str(error.get("code") or "")
            message = str(error.get("message") or f"HTTP {response.status_code}")
            logger.error("%s %s returned %s: %s %s", method, self.endpoint, response.status_code, code, message)
            if code in MISSING_COLUMN_CODES or "column" in message.lower():
                raise MissingColumnError(message)
            raise StorageError(message)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise StorageError("Backend returned a non-JSON body") from exc

    def insert(self, record: Dict[str, Any]) -> Dict[str, Any]:
        payload = dict(record)
        payload.setdefault("completed_at", utc_now_iso())
        data = self._request("POST", payload=payload, prefer="return=representation")
        if isinstance(data, list):
            if not data:
                raise StorageError("Insert returned no row")
            return data[0]
        if isinstance(data, dict):
            return data
        raise StorageError("Insert returned no row")

    def list_responses(self) -> List[Dict[str, Any]]:
        data = self._request("GET", params={"select": "*", "order": "completed_at.desc"})
        return list(data or [])

    def get_by_audit_number(self, audit_number: int) -> Optional[Dict[str, Any]]:
        data = self._request(
            "GET",
            params={
                "select": "*",
                "audit_number": f"eq.{int(audit_number)}",
                "department": f"eq.{DIAGNOSTIC_DEPARTMENT}",
                "limit": "1",
            },
        )
        return data[0] if data else None

    def set_archived(self, response_id: str, archived: bool) -> None:
        self._request("PATCH", params={"id": f"eq.{response_id}"}, payload={"archived": archived})

    def delete(self, response_id: str) -> None:
        self._request("DELETE", params={"id": f"eq.{response_id}"})

    def delete_many(self, response_ids: Iterable[str]) -> None:
        ids = [str(response_id) for response_id in response_ids]
        if not ids:
            return
        self._request("DELETE", params={"id": f"in.({','.join(ids)})"})


class MemoryResponseStore:
    def __init__(self, has_archived_column: bool = True) -> None:
        self.has_archived_column = has_archived_column
        self.rows: List[Dict[str, Any]] = []
        self._audit_numbers = itertools.count(1)
        self._lock = threading.Lock()

    def insert(self, record: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(record)
        now = utc_now_iso()
        row.setdefault("completed_at", now)
        row.setdefault("created_at", now)
        with self._lock:
            row["id"] = str(uuid.uuid4())
            if self.has_archived_column:
                row.setdefault("archived", False)
            if row.get("department") == DIAGNOSTIC_DEPARTMENT:
                row["audit_number"] = next(self._audit_numbers)
            self.rows.append(row)
        return dict(row)

    def list_responses(self) -> List[Dict[str, Any]]:
        return [dict(row) for row in sorted(self.rows, key=lambda row: row.get("completed_at") or "", reverse=True)]

    def get_by_audit_number(self, audit_number: int) -> Optional[Dict[str, Any]]:
        for row in self.rows:
            if row.get("audit_number") == audit_number and row.get("department") == DIAGNOSTIC_DEPARTMENT:
                return dict(row)
        return None

    def _find(self, response_id: str) -> Dict[str, Any]:
        for row in self.rows:
            if row["id"] == response_id:
                return row
        raise StorageError(f"Response {response_id} not found")

    def set_archived(self, response_id: str, archived: bool) -> None:
        if not self.has_archived_column:
            raise MissingColumnError('column "archived" does not exist')
        self._find(response_id)["archived"] = archived

    def delete(self, response_id: str) -> None:
        with self._lock:
            self.rows = [row for row in self.rows if row["id"] != response_id]

    def delete_many(self, response_ids: Iterable[str]) -> None:
        ids = set(response_ids)
        with self._lock:
            self.rows = [row for row in self.rows if row["id"] not in ids]
