"""Room set-up pages: facilities, beds, room sizes, room classes and rooms."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import ValidationInfo, field_validator

from backoffice.lists import pipeline
from backoffice.lists.controller import ListSpec, MutationMode
from backoffice.lists.pipeline import Entity, SortSpec
from backoffice.lists.transport import ResourceEndpoint
from backoffice.pages.base import PageInput, optional_text, require_text

RoomStatus = Literal["AVAILABLE", "OCCUPIED", "CLEANING", "MAINTENANCE", "OUT_OF_ORDER"]

FACILITY_SEED: list[Entity] = [
    {"id": i, "name": name}
    for i, name in enumerate(
        [
            "Air Conditioner",
            "Lighting",
            "WiFi",
            "Television",
            "Mini Bar",
            "Room Service",
            "Parking",
            "Balcony",
            "Safe",
            "Laundry Service",
        ],
        start=1,
    )
]

ROOM_SIZE_SEED: list[Entity] = [
    {"id": i, "name": name}
    for i, name in enumerate(
        [
            "Executive Suite",
            "Double-Double",
            "Twin",
            "King",
            "Queen",
            "Quad",
            "Triple",
            "Double",
            "Single",
            "Deluxe Suite",
            "Presidential Suite",
            "Junior Suite",
        ],
        start=1,
    )
]


# ---------------------------------------------------------------------------
# Simple named lists
# ---------------------------------------------------------------------------


class FacilityInput(PageInput):
    name: str

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        return require_text(value, "Please enter a facility name")


class BedInput(PageInput):
    name: str

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        return require_text(value, "Please enter a bed name")


class RoomSizeInput(PageInput):
    name: str

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        return require_text(value, "Please enter a room size")


def _named_comparators(column: str) -> dict[str, Any]:
    # The tables label the id column "SL".
    return {"sl": pipeline.numeric("id"), column: pipeline.text("name")}


def room_facilities() -> ListSpec:
    return ListSpec(
        name="room-facilities",
        label="facility",
        endpoint=ResourceEndpoint(path="/api/room-facilities/room-facilities-list"),
        search_fields=("name",),
        comparators=_named_comparators("facilityName"),
        default_sort=SortSpec(key="sl"),
        input_model=FacilityInput,
        fallback=FACILITY_SEED,
        create_mode=MutationMode.OPTIMISTIC,
        update_mode=MutationMode.OPTIMISTIC,
        delete_mode=MutationMode.OPTIMISTIC,
        refresh_after_write=False,
    )


def beds() -> ListSpec:
    """Bed list; the endpoint returns a bare array and takes ids in the body."""
    return ListSpec(
        name="beds",
        label="bed",
        endpoint=ResourceEndpoint(path="/api/room-setting/bed-list"),
        search_fields=("name",),
        comparators=_named_comparators("bedName"),
        default_sort=SortSpec(key="sl"),
        input_model=BedInput,
    )


def room_sizes() -> ListSpec:
    """Room sizes are stored as ``name`` but written as ``room_size``."""
    return ListSpec(
        name="room-sizes",
        label="room size",
        endpoint=ResourceEndpoint(
            path="/api/room-facilities/room-size-list",
            body_aliases={"name": "room_size"},
        ),
        search_fields=("name",),
        comparators=_named_comparators("roomSize"),
        default_sort=SortSpec(key="sl"),
        input_model=RoomSizeInput,
        fallback=ROOM_SIZE_SEED,
        create_mode=MutationMode.OPTIMISTIC,
        update_mode=MutationMode.OPTIMISTIC,
        delete_mode=MutationMode.OPTIMISTIC,
        refresh_after_write=False,
    )


# ---------------------------------------------------------------------------
# Room classes
# ---------------------------------------------------------------------------


class RoomClassInput(PageInput):
    name: str
    description: str | None = None
    ratePerNight: float
    rateDayUse: float
    maxOccupancy: int
    standardOccupancy: int
    roomSize: str | None = None
    bedConfiguration: str | None = None
    isActive: bool = True

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        return require_text(value, "Room class name is required")

    @field_validator("ratePerNight")
    @classmethod
    def _night_rate_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Night rate must be greater than 0")
        return value

    @field_validator("rateDayUse")
    @classmethod
    def _day_rate_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Day rate must be greater than 0")
        return value

    @field_validator("maxOccupancy")
    @classmethod
    def _max_occupancy_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Max occupancy must be greater than 0")
        return value

    @field_validator("standardOccupancy")
    @classmethod
    def _standard_within_max(cls, value: int, info: ValidationInfo) -> int:
        if value <= 0:
            raise ValueError("Standard occupancy must be greater than 0")
        max_occupancy = info.data.get("maxOccupancy")
        if max_occupancy is not None and value > max_occupancy:
            raise ValueError("Standard occupancy cannot exceed max occupancy")
        return value

    @field_validator("description", "roomSize", "bedConfiguration")
    @classmethod
    def _blank_is_none(cls, value: str | None) -> str | None:
        return optional_text(value)


def room_class_delete_guard(entity: Entity) -> str | None:
    rooms = pipeline.get_field(entity, "_count.rooms") or 0
    if rooms > 0:
        return f"Cannot delete room class with {rooms} room(s) assigned"
    return None


def room_classes() -> ListSpec:
    return ListSpec(
        name="room-classes",
        label="room class",
        endpoint=ResourceEndpoint(
            path="/api/rooms/settings/classes",
            collection_keys=("roomClasses", "items", "data"),
            entity_keys=("roomClass", "item", "data"),
            update_style="path",
            delete_style="path",
        ),
        search_fields=("name", "description", "bedConfiguration"),
        facet_fields={"isActive": "isActive"},
        comparators={
            "name": pipeline.text("name"),
            "ratePerNight": pipeline.numeric("ratePerNight"),
            "maxOccupancy": pipeline.numeric("maxOccupancy"),
            "rooms": pipeline.numeric("_count.rooms"),
            "reservations": pipeline.numeric("_count.reservations"),
            "createdAt": pipeline.date_value("createdAt"),
        },
        default_sort=SortSpec(key="name"),
        input_model=RoomClassInput,
        delete_guard=room_class_delete_guard,
    )


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------


class RoomInput(PageInput):
    roomNumber: str
    roomClassId: int
    floorId: int
    status: RoomStatus = "AVAILABLE"
    specialNotes: str | None = None

    @field_validator("roomNumber", mode="before")
    @classmethod
    def _room_number_required(cls, value: Any) -> str:
        return require_text(value, "Room number is required")

    @field_validator("specialNotes")
    @classmethod
    def _blank_is_none(cls, value: str | None) -> str | None:
        return optional_text(value)


def rooms() -> ListSpec:
    """Room inventory; status, class and floor filters are applied by the API."""
    return ListSpec(
        name="rooms",
        label="room",
        endpoint=ResourceEndpoint(
            path="/api/rooms",
            collection_keys=("rooms", "items", "data"),
            entity_keys=("room", "item", "data"),
            update_style="path",
            delete_style="path",
        ),
        search_fields=("roomNumber", "roomClass.name", "floor.name"),
        server_facets={
            "status": "status",
            "roomClass": "roomClassId",
            "floor": "floorId",
        },
        comparators={
            "roomNumber": pipeline.text("roomNumber"),
            "status": pipeline.text("status"),
            "roomClass": pipeline.text("roomClass.name"),
            "floor": pipeline.numeric("floor.floorNumber"),
            "nextCleaningDue": pipeline.date_value("nextCleaningDue"),
        },
        default_sort=SortSpec(key="roomNumber"),
        input_model=RoomInput,
    )
