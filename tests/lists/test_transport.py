"""Tests for the REST resource client, using httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from backoffice.lists.results import ErrorKind, err_from_exception
from backoffice.lists.transport import (
    MalformedResponseError,
    NetworkError,
    ResourceClient,
    ResourceEndpoint,
    ServerError,
)

pytestmark = pytest.mark.unit


BEDS = ResourceEndpoint(path="/api/room-setting/bed-list")
CLASSES = ResourceEndpoint(
    path="api/rooms/settings/classes/",
    collection_keys=("roomClasses",),
    entity_keys=("roomClass",),
    update_style="path",
    delete_style="path",
)


# ---------------------------------------------------------------------------
# ResourceEndpoint
# ---------------------------------------------------------------------------


class TestResourceEndpoint:
    def test_path_is_normalized(self):
        assert CLASSES.path == "/api/rooms/settings/classes"
        assert CLASSES.item_path(4) == "/api/rooms/settings/classes/4"

    def test_item_base_and_update_suffix(self):
        endpoint = ResourceEndpoint(
            path="/api/assets/list",
            item_base="/api/assets",
            update_suffix="edit",
            update_style="path",
        )
        assert endpoint.item_path(3) == "/api/assets/3"
        assert endpoint.update_path(3) == "/api/assets/3/edit"

    def test_blank_path_rejected(self):
        with pytest.raises(ValueError):
            ResourceEndpoint(path="  /  ")

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValueError):
            ResourceEndpoint(path="/x", bogus=True)


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


class TestFetch:
    async def test_bare_array(self, api):
        api.queue("GET", httpx.Response(200, json=[{"id": 1, "name": "King"}]))
        client = api.client(BEDS)
        assert await client.fetch() == [{"id": 1, "name": "King"}]
        assert str(api.requests[0].url) == "http://backoffice.test/api/room-setting/bed-list"

    async def test_keyed_object(self, api):
        api.queue("GET", httpx.Response(200, json={"success": True, "roomClasses": [{"id": 2}]}))
        assert await api.client(CLASSES).fetch() == [{"id": 2}]

    async def test_items_key_is_a_default(self, api):
        api.queue("GET", httpx.Response(200, json={"items": [{"id": 5}]}))
        assert await api.client(BEDS).fetch() == [{"id": 5}]

    async def test_blank_params_are_dropped(self, api):
        api.queue("GET", httpx.Response(200, json=[]))
        await api.client(BEDS).fetch({"search": "suite", "status": "", "floorId": None})
        assert dict(api.requests[0].url.params) == {"search": "suite"}

    async def test_non_object_items_skipped(self, api):
        api.queue("GET", httpx.Response(200, json=[{"id": 1}, "junk", 3]))
        assert await api.client(BEDS).fetch() == [{"id": 1}]

    async def test_missing_list_is_malformed(self, api):
        api.queue("GET", httpx.Response(200, json={"count": 3}))
        with pytest.raises(MalformedResponseError):
            await api.client(BEDS).fetch()

    async def test_invalid_json_is_malformed(self, api):
        api.queue("GET", httpx.Response(200, content=b"<html>oops</html>"))
        with pytest.raises(MalformedResponseError) as exc_info:
            await api.client(BEDS).fetch()
        assert exc_info.value.kind is ErrorKind.MALFORMED_RESPONSE

    async def test_failure_envelope_is_server_error(self, api):
        api.queue(
            "GET", httpx.Response(200, json={"success": False, "error": "Database offline"})
        )
        with pytest.raises(ServerError) as exc_info:
            await api.client(CLASSES).fetch()
        assert exc_info.value.message == "Database offline"

    async def test_non_2xx_carries_server_message(self, api):
        api.queue("GET", httpx.Response(503, json={"message": "Service   unavailable"}))
        with pytest.raises(ServerError) as exc_info:
            await api.client(BEDS).fetch()
        assert exc_info.value.status_code == 503
        assert exc_info.value.message == "Service unavailable"

    async def test_non_2xx_without_message(self, api):
        api.queue("GET", httpx.Response(500, content=b"Internal Server Error"))
        with pytest.raises(ServerError) as exc_info:
            await api.client(BEDS).fetch()
        assert exc_info.value.message == ""
        assert "500" in str(exc_info.value)

    async def test_connection_failure_is_network_error(self, api):
        api.queue("GET", httpx.ConnectError("connection refused"))
        with pytest.raises(NetworkError):
            await api.client(BEDS).fetch()


# ---------------------------------------------------------------------------
# create / update / delete / action
# ---------------------------------------------------------------------------


class TestWrites:
    async def test_create_posts_body_and_unwraps_entity(self, api):
        api.queue("POST", httpx.Response(201, json={"roomClass": {"id": 9, "name": "Suite"}}))
        created = await api.client(CLASSES).create({"name": "Suite"})
        assert created == {"id": 9, "name": "Suite"}
        request = api.requests[0]
        assert request.url.path == "/api/rooms/settings/classes"
        assert json.loads(request.content) == {"name": "Suite"}

    async def test_create_uses_create_path(self, api):
        endpoint = ResourceEndpoint(path="/api/assets/list", create_path="/api/assets/create")
        api.queue("POST", httpx.Response(200, json={"id": 1}))
        await api.client(endpoint).create({"name": "Chair"})
        assert api.requests[0].url.path == "/api/assets/create"

    async def test_update_body_style_puts_id_in_body(self, api):
        api.queue("PUT", httpx.Response(200, json={"id": 2, "name": "Queen"}))
        await api.client(BEDS).update(2, {"name": "Queen"})
        request = api.requests[0]
        assert request.url.path == "/api/room-setting/bed-list"
        assert json.loads(request.content) == {"name": "Queen", "id": 2}

    async def test_body_aliases_rename_written_fields(self, api):
        endpoint = ResourceEndpoint(
            path="/api/room-facilities/room-size-list", body_aliases={"name": "room_size"}
        )
        api.queue("POST", httpx.Response(201, json={"id": 13, "name": "40 sqm"}))
        api.queue("PUT", httpx.Response(200, json={"id": 13, "name": "42 sqm"}))
        client = api.client(endpoint)

        created = await client.create({"name": "40 sqm"})
        await client.update(13, {"name": "42 sqm"})

        assert created == {"id": 13, "name": "40 sqm"}
        assert json.loads(api.requests[0].content) == {"room_size": "40 sqm"}
        assert json.loads(api.requests[1].content) == {"room_size": "42 sqm", "id": 13}

    async def test_update_path_style(self, api):
        api.queue("PUT", httpx.Response(200, json={"roomClass": {"id": 4}}))
        await api.client(CLASSES).update(4, {"name": "Deluxe"})
        assert api.requests[0].url.path == "/api/rooms/settings/classes/4"

    async def test_update_response_not_object_is_malformed(self, api):
        api.queue("PUT", httpx.Response(200, json=["unexpected"]))
        with pytest.raises(MalformedResponseError):
            await api.client(BEDS).update(2, {"name": "Queen"})

    async def test_delete_body_style(self, api):
        api.queue("DELETE", httpx.Response(200, json={"message": "Bed deleted"}))
        await api.client(BEDS).delete(3)
        request = api.requests[0]
        assert request.method == "DELETE"
        assert json.loads(request.content) == {"id": 3}

    async def test_delete_path_style_with_empty_body(self, api):
        api.queue("DELETE", httpx.Response(204))
        await api.client(CLASSES).delete(4)
        assert api.requests[0].url.path == "/api/rooms/settings/classes/4"

    async def test_delete_failure_envelope(self, api):
        api.queue(
            "DELETE",
            httpx.Response(200, json={"success": False, "error": {"message": "In use"}}),
        )
        with pytest.raises(ServerError, match="In use"):
            await api.client(CLASSES).delete(4)

    async def test_action_posts_to_item_path(self, api):
        endpoint = ResourceEndpoint(
            path="/api/front-office/check-ins/today", item_base="/api/front-office/check-ins"
        )
        api.queue("POST", httpx.Response(200, json={"success": True}))
        result = await api.client(endpoint).action(12, body={"notes": "late arrival"})
        assert result == {"success": True}
        request = api.requests[0]
        assert request.url.path == "/api/front-office/check-ins/12"
        assert json.loads(request.content) == {"notes": "late arrival"}


# ---------------------------------------------------------------------------
# Client lifecycle and error conversion
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_injected_client_is_not_closed(self, api):
        http_client = api.http_client()
        client = ResourceClient("http://backoffice.test/", BEDS, http_client=http_client)
        assert client.base_url == "http://backoffice.test"
        await client.aclose()
        assert not http_client.is_closed

    async def test_owned_client_is_closed(self):
        client = ResourceClient("http://backoffice.test", BEDS, timeout=2.0)
        await client.aclose()
        assert client._http_client.is_closed


class TestErrFromException:
    def test_server_message_is_kept(self):
        err = err_from_exception(ServerError("Name taken", status_code=409), "Failed to add")
        assert err.kind is ErrorKind.SERVER
        assert err.message == "Name taken"
        assert err.status_code == 409

    def test_server_without_message_uses_fallback(self):
        err = err_from_exception(ServerError("", status_code=500), "Failed to add bed")
        assert err.message == "Failed to add bed"

    def test_network_detail_is_not_shown(self):
        err = err_from_exception(NetworkError("Could not reach server: boom"), "Failed to add")
        assert err.kind is ErrorKind.NETWORK
        assert err.message == "Failed to add"
