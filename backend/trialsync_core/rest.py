from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import httpx

from .errors import DecodeError, NoMatchingRowError, RemoteRequestError, RemoteUnavailableError
from .schemas import decode_count
from .settings import SupabaseSettings


logger = logging.getLogger(__name__)

FilterValue = Union[str, int, float, bool, None, Sequence[Any]]


def eq(value: Any) -> str:
    return f"eq.{_literal(value)}"


def in_(values: Iterable[Any]) -> str:
    return "in.(" + ",".join(_literal(value) for value in values) + ")"


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def filter_params(filters: Mapping[str, FilterValue]) -> List[Tuple[str, str]]:
    """Turn ``{"class_id": 5, "armband_number": [1, 2]}`` into PostgREST operators."""

    params: List[Tuple[str, str]] = []
    for column, value in filters.items():
        if isinstance(value, (list, tuple, set, frozenset)):
            params.append((column, in_(value)))
        else:
            params.append((column, eq(value)))
    return params


class RestClient:
    """Thin PostgREST client for the Supabase project.

    Every request is issued and awaited before the next one starts. There is
    no retry; non-2xx answers raise RemoteRequestError with the raw body.
    """

    def __init__(self, settings: SupabaseSettings, transport: httpx.BaseTransport | None = None) -> None:
        self.settings = settings
        self._transport = transport

    def _client(self) -> httpx.Client:
        if self._transport is not None:
            return httpx.Client(timeout=self.settings.timeout, transport=self._transport)
        return httpx.Client(timeout=self.settings.timeout)

    def _send(
        self,
        method: str,
        url: str,
        params: Optional[List[Tuple[str, str]]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        allow_status: Tuple[int, ...] = (),
    ) -> httpx.Response:
        logger.debug("%s %s %s", method, url, params or "")
        try:
            with self._client() as client:
                response = client.request(method, url, params=params, json=json, headers=headers)
        except httpx.HTTPError as exc:
            raise RemoteUnavailableError(f"{method} {url} failed: {exc}") from exc

        if response.status_code in allow_status:
            return response
        if response.status_code < 200 or response.status_code >= 300:
            raise RemoteRequestError(
                method,
                url,
                response.status_code,
                response.text,
                detail=extract_supabase_detail(response),
            )
        return response

    @staticmethod
    def _json(response: httpx.Response, source: str) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise DecodeError(f"{source}: response body is not JSON", payload=response.text) from exc

    def select(self, collection: str, columns: str, filters: Mapping[str, FilterValue] | None = None) -> Any:
        params = [("select", columns)] + filter_params(filters or {})
        response = self._send(
            "GET",
            self.settings.endpoint(collection),
            params=params,
            headers=self.settings.headers(),
        )
        return self._json(response, f"select {collection}")

    def upsert(self, collection: str, records: List[Dict[str, Any]], conflict_columns: Sequence[str]) -> int:
        """Insert-or-merge ``records`` keyed on ``conflict_columns``; returns the record count."""

        if not records:
            return 0
        params = [("on_conflict", ",".join(conflict_columns))]
        self._send(
            "POST",
            self.settings.endpoint(collection),
            params=params,
            json=records,
            headers=self.settings.headers("resolution=merge-duplicates", write=True),
        )
        logger.debug("Upserted %d %s rows", len(records), collection)
        return len(records)

    def patch(self, collection: str, filters: Mapping[str, FilterValue], values: Dict[str, Any]) -> List[Dict[str, Any]]:
        response = self._send(
            "PATCH",
            self.settings.endpoint(collection),
            params=filter_params(filters),
            json=values,
            headers=self.settings.headers("return=representation", write=True),
        )
        rows = self._json(response, f"patch {collection}")
        if not isinstance(rows, list):
            raise DecodeError(f"patch {collection}: expected a JSON array", payload=rows)
        if not rows:
            raise NoMatchingRowError(f"No {collection} row matched {dict(filters)}")
        return rows

    def delete(self, collection: str, filters: Mapping[str, FilterValue]) -> bool:
        """Delete matching rows. Returns False when the row was already absent (404)."""

        if not filters:
            raise ValueError("Refusing to delete without a filter")
        response = self._send(
            "DELETE",
            self.settings.endpoint(collection),
            params=filter_params(filters),
            headers=self.settings.headers(),
            allow_status=(404,),
        )
        return response.status_code != 404

    def rpc(self, procedure: str, args: Dict[str, Any]) -> Any:
        response = self._send(
            "POST",
            self.settings.rpc_endpoint(procedure),
            json=args,
            headers=self.settings.headers(write=True),
        )
        return self._json(response, f"rpc {procedure}")

    def rpc_count(self, procedure: str, args: Dict[str, Any]) -> int:
        return decode_count(self.rpc(procedure, args), f"rpc {procedure}")


def extract_supabase_detail(response: httpx.Response | None) -> str | None:
    if response is None:
        return None
    try:
        payload = response.json()
    except ValueError:
        text = (response.text or "").strip()
        return text or None

    if isinstance(payload, list) and payload:
        payload = payload[0]
    if isinstance(payload, dict):
        for key in ("message", "detail", "error", "hint", "code"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None
