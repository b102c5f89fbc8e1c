"""Restaurant pages: waiters and orders."""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from backoffice.lists import pipeline
from backoffice.lists.controller import ListSpec, MutationMode
from backoffice.lists.pipeline import Entity, SortSpec
from backoffice.lists.transport import ResourceEndpoint
from backoffice.pages.base import PageInput, require_text

WaiterShift = Literal["MORNING", "EVENING", "NIGHT"]
WaiterStatus = Literal["ACTIVE", "INACTIVE", "ON_LEAVE"]
OrderState = Literal["Pending", "Served"]

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

WAITER_SEED: list[Entity] = [
    {
        "id": 1,
        "name": "Alice Johnson",
        "phone": "+1234567890",
        "email": "alice@hotel.com",
        "shift": "MORNING",
        "status": "ACTIVE",
        "experience": 2,
        "joinDate": "2023-01-15",
        "salary": 25000,
    },
    {
        "id": 2,
        "name": "Bob Smith",
        "phone": "+1234567891",
        "email": "bob@hotel.com",
        "shift": "EVENING",
        "status": "ACTIVE",
        "experience": 3,
        "joinDate": "2022-08-20",
        "salary": 28000,
    },
    {
        "id": 3,
        "name": "Carol Davis",
        "phone": "+1234567892",
        "email": "carol@hotel.com",
        "shift": "NIGHT",
        "status": "ON_LEAVE",
        "experience": 1,
        "joinDate": "2023-06-10",
        "salary": 22000,
    },
    {
        "id": 4,
        "name": "David Wilson",
        "phone": "+1234567893",
        "email": "david@hotel.com",
        "shift": "MORNING",
        "status": "ACTIVE",
        "experience": 4,
        "joinDate": "2021-12-05",
        "salary": 32000,
    },
    {
        "id": 5,
        "name": "Eva Brown",
        "phone": "+1234567894",
        "email": "eva@hotel.com",
        "shift": "EVENING",
        "status": "INACTIVE",
        "experience": 2,
        "joinDate": "2023-03-22",
        "salary": 26000,
    },
]

ORDER_SEED: list[Entity] = [
    {
        "invoiceNo": 160,
        "customerName": "Efe Chia",
        "waiter": "1",
        "tableMap": "1",
        "state": "Pending",
        "orderDate": "2025-07-10",
        "totalAmount": 814.0,
    },
    {
        "invoiceNo": 159,
        "customerName": "Efe Chia",
        "waiter": "4",
        "tableMap": "4",
        "state": "Pending",
        "orderDate": "2025-07-09",
        "totalAmount": 224.0,
    },
    {
        "invoiceNo": 158,
        "customerName": "Efe Chia",
        "waiter": "2",
        "tableMap": "2",
        "state": "Pending",
        "orderDate": "2025-07-09",
        "totalAmount": 560.0,
    },
    {
        "invoiceNo": 157,
        "customerName": "Kisembo Ishikawa",
        "waiter": "2",
        "tableMap": "2",
        "state": "Served",
        "orderDate": "2025-07-08",
        "totalAmount": 56.0,
    },
]


# ---------------------------------------------------------------------------
# Waiters
# ---------------------------------------------------------------------------


class WaiterInput(PageInput):
    name: str
    phone: str
    email: str
    shift: WaiterShift = "MORNING"
    status: WaiterStatus = "ACTIVE"
    experience: int = Field(default=0, ge=0)
    joinDate: str
    salary: float = Field(default=0, ge=0)

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        return require_text(value, "Waiter name is required")

    @field_validator("phone")
    @classmethod
    def _phone_required(cls, value: str) -> str:
        return require_text(value, "Phone number is required")

    @field_validator("email")
    @classmethod
    def _email_format(cls, value: str) -> str:
        value = require_text(value, "Email is required")
        if not _EMAIL_PATTERN.match(value):
            raise ValueError("Enter a valid email address")
        return value

    @field_validator("joinDate")
    @classmethod
    def _join_date_required(cls, value: str) -> str:
        return require_text(value, "Join date is required")


class WaiterStats(BaseModel):
    """Stat cards above the waiter list."""

    total: int
    active: int
    on_leave: int
    average_experience: float


def waiter_stats(waiters: Sequence[Entity]) -> WaiterStats:
    """Compute stat cards over the whole collection, not just the visible page."""
    counts = pipeline.count_by(waiters, "status")
    return WaiterStats(
        total=len(waiters),
        active=counts.get("ACTIVE", 0),
        on_leave=counts.get("ON_LEAVE", 0),
        average_experience=round(pipeline.average(waiters, "experience"), 1),
    )


def waiters() -> ListSpec:
    return ListSpec(
        name="waiters",
        label="waiter",
        endpoint=ResourceEndpoint(
            path="/api/restaurant/waiters",
            collection_keys=("waiters", "items", "data"),
            entity_keys=("waiter", "item", "data"),
            update_style="path",
            delete_style="path",
        ),
        search_fields=("name", "phone", "email"),
        facet_fields={"status": "status", "shift": "shift"},
        comparators={
            "id": pipeline.numeric("id"),
            "name": pipeline.text("name"),
            "experience": pipeline.numeric("experience"),
            "joinDate": pipeline.date_value("joinDate"),
            "salary": pipeline.numeric("salary"),
        },
        input_model=WaiterInput,
        fallback=WAITER_SEED,
        create_mode=MutationMode.OPTIMISTIC,
        update_mode=MutationMode.OPTIMISTIC,
        delete_mode=MutationMode.OPTIMISTIC,
        refresh_after_write=False,
    )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


class OrderInput(PageInput):
    customerName: str
    waiter: str
    tableMap: str
    state: OrderState = "Pending"
    orderDate: str
    totalAmount: float = Field(ge=0)

    @field_validator("customerName")
    @classmethod
    def _customer_required(cls, value: str) -> str:
        return require_text(value, "Customer name is required")

    @field_validator("waiter", "tableMap", mode="before")
    @classmethod
    def _coerce_reference(cls, value: object) -> object:
        # Waiter and table references arrive as numbers from some forms.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("orderDate")
    @classmethod
    def _order_date_required(cls, value: str) -> str:
        return require_text(value, "Order date is required")


def orders() -> ListSpec:
    return ListSpec(
        name="orders",
        label="order",
        endpoint=ResourceEndpoint(
            path="/api/restaurant/orders",
            id_field="invoiceNo",
            collection_keys=("orders", "items", "data"),
            entity_keys=("order", "item", "data"),
            update_style="path",
            delete_style="path",
        ),
        search_fields=("invoiceNo", "customerName", "waiter", "tableMap"),
        facet_fields={"state": "state"},
        comparators={
            "invoiceNo": pipeline.numeric("invoiceNo"),
            "customerName": pipeline.text("customerName"),
            "orderDate": pipeline.date_value("orderDate"),
            "totalAmount": pipeline.numeric("totalAmount"),
        },
        default_sort=SortSpec(key="invoiceNo", direction="desc"),
        input_model=OrderInput,
        fallback=ORDER_SEED,
        create_mode=MutationMode.OPTIMISTIC,
        update_mode=MutationMode.OPTIMISTIC,
        delete_mode=MutationMode.OPTIMISTIC,
        refresh_after_write=False,
    )
