"""REST resource client used by list pages.

Each back-office list is served by one endpoint family::

    GET    {base}/resource[?query]    -> Entity[] | {"items": Entity[]} | {"<key>": Entity[]}
    POST   {base}/resource            -> created Entity
    PUT    {base}/resource[/{id}]     -> updated Entity
    DELETE {base}/resource[/{id}]     -> success / failure only

Transport problems are raised as :class:`TransportError` subclasses; the
controller turns them into ``Err`` results at its public boundary.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from backoffice.lists.results import ErrorKind

logger = logging.getLogger(__name__)

IdStyle = Literal["body", "path"]

DEFAULT_COLLECTION_KEYS: tuple[str, ...] = ("items", "data")
DEFAULT_ENTITY_KEYS: tuple[str, ...] = ("item", "data")

_JSON_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


class TransportError(RuntimeError):
    """Base error for failed resource requests.

    ``message`` is empty when the server gave no usable error text.
    """

    kind: ErrorKind = ErrorKind.NETWORK

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        detail = message or "no details"
        if status_code is not None:
            super().__init__(f"{self.kind.value} error ({status_code}): {detail}")
        else:
            super().__init__(f"{self.kind.value} error: {detail}")


class NetworkError(TransportError):
    """The request never produced an HTTP response (connect error, timeout)."""

    kind = ErrorKind.NETWORK


class ServerError(TransportError):
    """The server answered with a non-2xx status or an explicit failure envelope."""

    kind = ErrorKind.SERVER


class MalformedResponseError(TransportError):
    """The server answered 2xx but the body could not be understood."""

    kind = ErrorKind.MALFORMED_RESPONSE


class ResourceEndpoint(BaseModel):
    """Where a list lives and how its endpoint family expects ids."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str = Field(min_length=1)
    item_base: str | None = None
    create_path: str | None = None
    update_suffix: str | None = None
    id_field: str = "id"
    collection_keys: tuple[str, ...] = DEFAULT_COLLECTION_KEYS
    entity_keys: tuple[str, ...] = DEFAULT_ENTITY_KEYS
    update_style: IdStyle = "body"
    delete_style: IdStyle = "body"
    # Entity field -> request body key, for endpoints that read a different name.
    body_aliases: dict[str, str] = Field(default_factory=dict)

    @field_validator("path", "item_base", "create_path")
    @classmethod
    def _normalize_path(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError("path must be a non-empty string")
        if not normalized.startswith("/"):
            normalized = f"/{normalized}"
        return normalized

    def item_path(self, entity_id: Any) -> str:
        """URL path of one entity; ``item_base`` overrides the list path."""
        return f"{self.item_base or self.path}/{entity_id}"

    def update_path(self, entity_id: Any) -> str:
        if self.update_style == "body":
            return self.path
        path = self.item_path(entity_id)
        if self.update_suffix:
            path = f"{path}/{self.update_suffix.strip('/')}"
        return path

    def wire_body(self, body: dict[str, Any]) -> dict[str, Any]:
        return {self.body_aliases.get(key, key): value for key, value in body.items()}


class ResourceClient:
    """Async client for one REST resource family."""

    def __init__(
        self,
        base_url: str,
        endpoint: ResourceEndpoint,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self.endpoint = endpoint
        self._owns_http_client = http_client is None
        if http_client is not None:
            self._http_client = http_client
        elif timeout is not None:
            self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        else:
            self._http_client = httpx.AsyncClient()

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    async def fetch(self, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Fetch the collection, normalizing bare-array and keyed-object bodies."""
        clean_params = {k: v for k, v in (params or {}).items() if v not in (None, "")}
        response = await self._send("GET", self.endpoint.path, params=clean_params or None)
        payload = _parse_json(response)
        return _unwrap_collection(payload, self.endpoint.collection_keys)

    async def create(self, body: dict[str, Any]) -> dict[str, Any]:
        path = self.endpoint.create_path or self.endpoint.path
        response = await self._send("POST", path, json=self.endpoint.wire_body(body))
        return self._entity_from(response)

    async def update(self, entity_id: Any, body: dict[str, Any]) -> dict[str, Any]:
        payload = self.endpoint.wire_body({**body, self.endpoint.id_field: entity_id})
        response = await self._send("PUT", self.endpoint.update_path(entity_id), json=payload)
        return self._entity_from(response)

    async def delete(self, entity_id: Any) -> None:
        if self.endpoint.delete_style == "path":
            response = await self._send("DELETE", self.endpoint.item_path(entity_id))
        else:
            response = await self._send(
                "DELETE", self.endpoint.path, json={self.endpoint.id_field: entity_id}
            )
        # Bodies are optional on delete; an explicit failure envelope still counts.
        if response.content:
            try:
                payload = response.json()
            except ValueError:
                return
            _raise_for_failure_envelope(payload, response.status_code)

    async def action(
        self,
        entity_id: Any,
        name: str | None = None,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """POST to ``{path}/{id}`` (or ``{path}/{id}/{name}``) and return the JSON body."""
        path = self.endpoint.item_path(entity_id)
        if name:
            path = f"{path}/{name.strip('/')}"
        response = await self._send("POST", path, json=body or {})
        payload = _parse_json(response)
        if not isinstance(payload, dict):
            raise MalformedResponseError(
                "Unexpected response from server", status_code=response.status_code
            )
        return payload

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = f"{self._base_url}{path}"
        try:
            response = await self._http_client.request(
                method,
                url,
                params=params,
                json=json,
                headers=_JSON_HEADERS,
            )
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise NetworkError(f"Could not reach server: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            message = _safe_error_message(response) or ""
            logger.warning(
                "%s %s returned %s: %s", method, url, response.status_code, message or "no details"
            )
            raise ServerError(message, status_code=response.status_code)
        return response

    def _entity_from(self, response: httpx.Response) -> dict[str, Any]:
        payload = _parse_json(response)
        entity = _unwrap_entity(payload, self.endpoint.entity_keys)
        if entity is None:
            raise MalformedResponseError(
                "Unexpected response from server", status_code=response.status_code
            )
        return entity


def _parse_json(response: httpx.Response) -> Any:
    try:
        payload = response.json()
    except ValueError as exc:
        raise MalformedResponseError(
            "Server returned an invalid response", status_code=response.status_code
        ) from exc
    _raise_for_failure_envelope(payload, response.status_code)
    return payload


def _raise_for_failure_envelope(payload: Any, status_code: int) -> None:
    if isinstance(payload, dict) and payload.get("success") is False:
        message = _message_from_payload(payload) or ""
        raise ServerError(message, status_code=status_code)


def _unwrap_collection(payload: Any, keys: tuple[str, ...]) -> list[dict[str, Any]]:
    raw: Any = None
    if isinstance(payload, list):
        raw = payload
    elif isinstance(payload, dict):
        for key in keys:
            if isinstance(payload.get(key), list):
                raw = payload[key]
                break
    if raw is None:
        raise MalformedResponseError("Server response did not contain a list")

    items: list[dict[str, Any]] = []
    for item in raw:
        if not isinstance(item, dict):
            logger.warning("Skipping non-object list item: %r", item)
            continue
        items.append(item)
    return items


def _unwrap_entity(payload: Any, keys: tuple[str, ...]) -> dict[str, Any] | None:
    if not isinstance(payload, dict):
        return None
    for key in keys:
        inner = payload.get(key)
        if isinstance(inner, dict):
            return inner
    return payload


def _message_from_payload(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict):
        error = error.get("message")
    for candidate in (error, payload.get("message")):
        if isinstance(candidate, str) and candidate.strip():
            return " ".join(candidate.split())[:200]
    return None


def _safe_error_message(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    return _message_from_payload(payload)
