"""
Data service client.

Every view talks to the relational data service through DataService:
row-level select (eq/neq filter, single-column order), insert, update and
delete. Two implementations exist:

  RestDataService    - PostgREST-style HTTP API (hosted service or hub_server.py)
  SqliteDataService  - local SQLite backend (store.py)

Backends translate their native failures into DataServiceError subclasses.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import requests

from .result import ErrorKind

logger = logging.getLogger(__name__)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Exceptions
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class DataServiceError(Exception):
    """Base error for data service calls."""
    kind = ErrorKind.QUERY


class TransportError(DataServiceError):
    """The service could not be reached or did not answer."""
    kind = ErrorKind.TRANSPORT


class QueryError(DataServiceError):
    """The service rejected the request (bad column, constraint violation)."""
    kind = ErrorKind.QUERY


class NotFoundError(DataServiceError):
    """An update or delete matched no row."""
    kind = ErrorKind.NOT_FOUND


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Query pieces
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


FILTER_OPS = ("eq", "neq")


@dataclass(frozen=True)
class Filter:
    column: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter op: {self.op}")


@dataclass(frozen=True)
class Order:
    column: str
    ascending: bool = True


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# DataService
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class DataService(ABC):
    """Row CRUD + filter + order against a named table."""

    @abstractmethod
    def select(
        self,
        table: str,
        filters: Iterable[Filter] = (),
        order: Optional[Order] = None,
    ) -> List[Dict[str, Any]]:
        """Return all rows matching every filter, in the requested order."""

    @abstractmethod
    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one row and return it with server-filled fields."""

    @abstractmethod
    def update(self, table: str, row_id: str, fields: Dict[str, Any]) -> None:
        """Apply a partial update to one row. Raises NotFoundError if missing."""

    @abstractmethod
    def delete(self, table: str, row_id: str) -> None:
        """Delete one row (dependents cascade). Raises NotFoundError if missing."""

    def select_one(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a single row by id, or None."""
        rows = self.select(table, [eq("id", row_id)])
        return rows[0] if rows else None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RestDataService
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class RestDataService(DataService):
    """
    HTTP client for a PostgREST-style API.

        GET    {url}/rest/v1/{table}?select=*&col=eq.v&order=col.asc
        POST   {url}/rest/v1/{table}            body: row
        PATCH  {url}/rest/v1/{table}?id=eq.v    body: fields
        DELETE {url}/rest/v1/{table}?id=eq.v

    Requests carry the project API key in `apikey` and the signed-in user's
    access token (or the API key when anonymous) as a bearer token.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        access_token: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = url.rstrip("/") + "/rest/v1"
        self.api_key = api_key
        self.access_token = access_token
        self.timeout = timeout
        self.session = session or requests.Session()

    def set_access_token(self, token: Optional[str]) -> None:
        self.access_token = token

    def _headers(self, representation: bool = False) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Content-Type": "application/json",
        }
        if representation:
            headers["Prefer"] = "return=representation"
        return headers

    def _request(self, method: str, table: str, params=None, json=None,
                 representation: bool = False) -> Any:
        url = f"{self.base_url}/{table}"
        try:
            r = self.session.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(representation),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"{method} {table} failed: {e}") from e

        if r.status_code >= 500:
            raise TransportError(f"{method} {table}: HTTP {r.status_code} {_error_message(r)}")
        if r.status_code == 404:
            raise NotFoundError(f"{method} {table}: {_error_message(r)}")
        if r.status_code >= 400:
            raise QueryError(f"{method} {table}: HTTP {r.status_code} {_error_message(r)}")

        if r.status_code == 204 or not r.content:
            return None
        try:
            return r.json()
        except ValueError as e:
            raise QueryError(f"{method} {table}: invalid JSON response") from e

    def select(self, table, filters=(), order=None):
        params = [("select", "*")]
        for f in filters:
            params.append((f.column, f"{f.op}.{_format_value(f.value)}"))
        if order is not None:
            direction = "asc" if order.ascending else "desc"
            params.append(("order", f"{order.column}.{direction}"))
        rows = self._request("GET", table, params=params)
        return list(rows or [])

    def insert(self, table, row):
        rows = self._request("POST", table, json=row, representation=True)
        if isinstance(rows, list):
            if not rows:
                raise QueryError(f"POST {table}: no row returned")
            return rows[0]
        if isinstance(rows, dict):
            return rows
        raise QueryError(f"POST {table}: no row returned")

    def update(self, table, row_id, fields):
        rows = self._request(
            "PATCH", table,
            params=[("id", f"eq.{row_id}")],
            json=fields,
            representation=True,
        )
        if not rows:
            raise NotFoundError(f"{table} row {row_id} not found")

    def delete(self, table, row_id):
        rows = self._request(
            "DELETE", table,
            params=[("id", f"eq.{row_id}")],
            representation=True,
        )
        if not rows:
            raise NotFoundError(f"{table} row {row_id} not found")


def _format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "value"):  # Enum members
        return str(value.value)
    return str(value)


def _error_message(r: requests.Response) -> str:
    """Pull a readable message out of an error response."""
    try:
        body = r.json()
    except ValueError:
        return r.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)[:200]
