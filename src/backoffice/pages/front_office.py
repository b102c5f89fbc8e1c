"""Front-office pages: today's check-ins and check-outs.

Both lists come from ``{"success": true, "reservations": [...]}`` envelopes
and are filtered, sorted and paged client-side.  Checking a guest in or out
is an entity action (``POST /api/front-office/check-ins/{id}``) followed by a
reload, since the reservation leaves today's list.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, ValidationError

from backoffice.lists import pipeline
from backoffice.lists.controller import ListController, ListSpec
from backoffice.lists.pipeline import SortSpec
from backoffice.lists.results import Result, err_from_validation
from backoffice.lists.transport import ResourceEndpoint
from backoffice.pages.base import PageInput

PAYMENT_STATUSES: tuple[str, ...] = ("PAID", "PARTIAL", "PENDING")

_SEARCH_FIELDS = (
    "bookingNumber",
    "customer.firstName",
    "customer.lastName",
    "customer.phone",
    "customer.identityNumber",
    "room.roomNumber",
)


def _reservation_comparators(date_field: str) -> dict[str, Any]:
    return {
        date_field: pipeline.date_value(date_field),
        "customerName": pipeline.text("customer.firstName"),
        "roomNumber": pipeline.text("room.roomNumber"),
        "totalAmount": pipeline.numeric("totalAmount"),
    }


def sort_options(date_field: str) -> dict[str, SortSpec]:
    """The "Sort by" dropdown: amounts are shown largest first."""
    return {
        date_field: SortSpec(key=date_field),
        "customerName": SortSpec(key="customerName"),
        "roomNumber": SortSpec(key="roomNumber"),
        "totalAmount": SortSpec(key="totalAmount", direction="desc"),
    }


def _reservations_endpoint(kind: str) -> ResourceEndpoint:
    return ResourceEndpoint(
        path=f"/api/front-office/{kind}/today",
        item_base=f"/api/front-office/{kind}",
        collection_keys=("reservations",),
        entity_keys=("reservation",),
    )


def check_ins() -> ListSpec:
    return ListSpec(
        name="check-ins",
        label="check-in",
        endpoint=_reservations_endpoint("check-ins"),
        search_fields=_SEARCH_FIELDS,
        facet_fields={"paymentStatus": "paymentStatus"},
        comparators=_reservation_comparators("checkInDate"),
        default_sort=SortSpec(key="checkInDate"),
    )


def check_outs() -> ListSpec:
    return ListSpec(
        name="check-outs",
        label="check-out",
        endpoint=_reservations_endpoint("check-outs"),
        search_fields=_SEARCH_FIELDS,
        facet_fields={"paymentStatus": "paymentStatus"},
        comparators=_reservation_comparators("checkOutDate"),
        default_sort=SortSpec(key="checkOutDate"),
    )


class CheckOutCharges(PageInput):
    extraCharges: float = Field(default=0, ge=0)
    minibarCharges: float = Field(default=0, ge=0)
    damageCharges: float = Field(default=0, ge=0)
    lateCheckoutFee: float = Field(default=0, ge=0)
    notes: str = ""

    @property
    def total(self) -> float:
        return self.extraCharges + self.minibarCharges + self.damageCharges + self.lateCheckoutFee


async def check_in(
    controller: ListController, reservation_id: Any, notes: str = ""
) -> Result[dict[str, Any]]:
    return await controller.perform(reservation_id, payload={"notes": notes.strip()})


async def check_out(
    controller: ListController,
    reservation_id: Any,
    charges: dict[str, Any] | None = None,
) -> Result[dict[str, Any]]:
    """Check a guest out, posting any extra charges collected at the desk."""
    try:
        parsed = CheckOutCharges.model_validate(charges or {})
    except ValidationError as exc:
        return err_from_validation(exc)
    return await controller.perform(reservation_id, payload=parsed.model_dump())
