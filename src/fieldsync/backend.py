"""Hosted backend client (PostgREST tables + object storage, raw HTTP, no SDK).

The reconciler only needs four capabilities -- insert, update, query by
natural key, and blob upload -- so anything implementing the Backend
protocol can stand in for the real service (tests use an in-memory fake).
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol
from urllib.parse import quote

import requests

from . import config

logger = logging.getLogger(__name__)


class FieldSyncError(Exception):
    """Base class for FieldSync errors."""


class BackendNotConfigured(FieldSyncError):
    """Raised when the backend URL or API key is missing."""


class BackendError(FieldSyncError):
    """A remote call was rejected or could not be completed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.append(f"code={self.code}")
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        return " ".join(parts)


class Backend(Protocol):
    def insert(self, table: str, row: dict[str, Any]) -> str: ...

    def update(self, table: str, record_id: str, patch: dict[str, Any]) -> None: ...

    def query(self, table: str, filters: dict[str, Any]) -> Optional[dict[str, Any]]: ...

    def upload_blob(
        self, bucket: str, path: str, data: bytes, content_type: str
    ) -> str: ...


def _error_from_response(resp: requests.Response) -> BackendError:
    """Build a BackendError from a PostgREST / storage error body."""
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("message") or body.get("error") or resp.text[:200] or resp.reason
    return BackendError(
        str(message),
        status_code=resp.status_code,
        code=body.get("code") or body.get("statusCode"),
        details=body.get("details") or body.get("hint"),
    )


def _filter_value(value: Any) -> str:
    if value is None:
        return "is.null"
    return f"eq.{value}"


class SupabaseBackend:
    """Thin wrapper around the hosted REST and storage HTTP APIs."""

    def __init__(
        self,
        url: str,
        api_key: str,
        access_token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[int] = None,
    ) -> None:
        if not url or not api_key:
            raise BackendNotConfigured("Backend URL and API key are required")
        self._base = url.rstrip("/")
        self._api_key = api_key
        self._token = access_token or api_key
        self._session = session or requests.Session()
        self._timeout = timeout if timeout is not None else config.BACKEND_TIMEOUT

    def _headers(self, extra: Optional[dict[str, str]] = None) -> dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._token}",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        """Send one request; network failures and non-2xx become BackendError."""
        url = f"{self._base}{path}"
        try:
            resp = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise BackendError(f"{method} {path} failed: {e}") from e
        if resp.status_code >= 400:
            err = _error_from_response(resp)
            logger.debug("%s %s -> %s", method, path, err)
            raise err
        return resp

    def set_access_token(self, token: str) -> None:
        """Swap the bearer token (e.g. after the user signs in)."""
        self._token = token or self._api_key

    def insert(self, table: str, row: dict[str, Any]) -> str:
        """Insert one row and return its server-assigned id."""
        resp = self._request(
            "POST",
            f"/rest/v1/{table}",
            json=[row],
            params={"select": "id"},
            headers=self._headers({
                "Content-Type": "application/json",
                "Prefer": "return=representation",
            }),
        )
        rows = resp.json()
        if not rows or "id" not in rows[0]:
            raise BackendError(f"Insert into {table} returned no id")
        return str(rows[0]["id"])

    def update(self, table: str, record_id: str, patch: dict[str, Any]) -> None:
        """Apply a partial patch to one row. Zero rows matched is an error."""
        resp = self._request(
            "PATCH",
            f"/rest/v1/{table}",
            json=patch,
            params={"id": f"eq.{record_id}", "select": "id"},
            headers=self._headers({
                "Content-Type": "application/json",
                "Prefer": "return=representation",
            }),
        )
        if not resp.json():
            raise BackendError(
                f"Update on {table} matched no row for id {record_id}",
                status_code=resp.status_code,
            )

    def query(self, table: str, filters: dict[str, Any]) -> Optional[dict[str, Any]]:
        """Return the first row (id only) matching every filter, or None."""
        params = {"select": "id", "limit": "1"}
        for field, value in filters.items():
            params[field] = _filter_value(value)
        resp = self._request(
            "GET",
            f"/rest/v1/{table}",
            params=params,
            headers=self._headers({"Accept": "application/json"}),
        )
        rows = resp.json()
        return rows[0] if rows else None

    def upload_blob(
        self, bucket: str, path: str, data: bytes, content_type: str
    ) -> str:
        """Upload (upsert) an object and return its public URL."""
        object_path = quote(path)
        self._request(
            "POST",
            f"/storage/v1/object/{bucket}/{object_path}",
            data=data,
            headers=self._headers({
                "Content-Type": content_type,
                "cache-control": config.PHOTO_CACHE_CONTROL,
                "x-upsert": "true",
            }),
        )
        return self.public_url(bucket, path)

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self._base}/storage/v1/object/public/{bucket}/{quote(path)}"

    def ping(self) -> bool:
        """True if the REST endpoint answers at all (any HTTP status)."""
        try:
            self._session.get(
                f"{self._base}/rest/v1/",
                headers=self._headers(),
                timeout=self._timeout,
            )
            return True
        except requests.RequestException as e:
            logger.debug("Backend unreachable: %s", e)
            return False


def backend_from_config() -> Optional[SupabaseBackend]:
    """Build a backend from env config. None if the URL or key is unset."""
    config.init()
    if not config.SUPABASE_URL or not config.SUPABASE_ANON_KEY:
        logger.warning("SUPABASE_URL / SUPABASE_ANON_KEY not set; backend disabled")
        return None
    return SupabaseBackend(
        config.SUPABASE_URL,
        config.SUPABASE_ANON_KEY,
        access_token=config.SUPABASE_ACCESS_TOKEN or None,
    )
