"""Page registry: maps page names to their list configuration factories."""

from __future__ import annotations

import logging
from collections.abc import Callable

import httpx

from backoffice.lists.controller import (
    DEFAULT_DEBOUNCE_S,
    DEFAULT_PAGE_SIZE,
    ListController,
    ListSpec,
)
from backoffice.lists.transport import ResourceClient
from backoffice.pages import assets, front_office, restaurant, rooms

logger = logging.getLogger(__name__)

PAGES: dict[str, Callable[[], ListSpec]] = {
    "assets": assets.asset_list,
    "asset-categories": assets.asset_categories,
    "waiters": restaurant.waiters,
    "orders": restaurant.orders,
    "room-facilities": rooms.room_facilities,
    "beds": rooms.beds,
    "room-sizes": rooms.room_sizes,
    "room-classes": rooms.room_classes,
    "rooms": rooms.rooms,
    "check-ins": front_office.check_ins,
    "check-outs": front_office.check_outs,
}


def page_names() -> list[str]:
    return sorted(PAGES)


def get_page(name: str) -> ListSpec:
    """Build a fresh :class:`ListSpec` for *name*.

    Raises
    ------
    KeyError
        If *name* is not a registered page.
    """
    try:
        factory = PAGES[name]
    except KeyError:
        raise KeyError(f"Unknown page {name!r}; known pages: {', '.join(page_names())}") from None
    return factory()


def build_controller(
    name: str,
    base_url: str,
    *,
    http_client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
    debounce_s: float = DEFAULT_DEBOUNCE_S,
) -> ListController:
    """Create a controller for page *name* that owns its resource client."""
    spec = get_page(name)
    client = ResourceClient(base_url, spec.endpoint, http_client=http_client, timeout=timeout)
    logger.debug("Building %s controller against %s", name, client.base_url)
    return ListController(
        spec,
        client,
        page_size=page_size,
        debounce_s=debounce_s,
        owns_client=True,
    )
