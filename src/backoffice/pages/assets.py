"""Asset inventory pages: the asset list and asset categories."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, field_validator

from backoffice.lists import pipeline
from backoffice.lists.controller import ListSpec, MutationMode
from backoffice.lists.pipeline import SortSpec
from backoffice.lists.transport import ResourceEndpoint
from backoffice.pages.base import PageInput, optional_text, require_text

AssetType = Literal["FIXED_ASSET", "UTENSIL"]
AssetStatus = Literal["ACTIVE", "MAINTENANCE", "RETIRED", "DAMAGED", "OUT_OF_ORDER"]

ASSET_TYPES: tuple[str, ...] = ("FIXED_ASSET", "UTENSIL")
ASSET_STATUSES: tuple[str, ...] = ("ACTIVE", "MAINTENANCE", "RETIRED", "DAMAGED", "OUT_OF_ORDER")


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------


class AssetInput(PageInput):
    name: str
    type: AssetType = "FIXED_ASSET"
    status: AssetStatus = "ACTIVE"
    categoryId: int | None = None
    quantity: int = Field(default=1, ge=1)
    purchasePrice: float = Field(gt=0)
    purchaseDate: str
    maintenanceDate: str
    location: str | None = None
    serialNumber: str | None = None

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        return require_text(value, "Asset name is required")

    @field_validator("purchaseDate")
    @classmethod
    def _purchase_date_required(cls, value: str) -> str:
        return require_text(value, "Purchase date is required")

    @field_validator("maintenanceDate")
    @classmethod
    def _maintenance_date_required(cls, value: str) -> str:
        return require_text(value, "Maintenance date is required")

    @field_validator("location", "serialNumber")
    @classmethod
    def _blank_is_none(cls, value: str | None) -> str | None:
        return optional_text(value)


def asset_list() -> ListSpec:
    """Asset register; search and the type/status/category filters run server-side."""
    return ListSpec(
        name="assets",
        label="asset",
        endpoint=ResourceEndpoint(
            path="/api/assets/list",
            item_base="/api/assets",
            create_path="/api/assets/create",
            update_suffix="edit",
            collection_keys=("assets", "items", "data"),
            entity_keys=("asset", "item", "data"),
            update_style="path",
            delete_style="path",
        ),
        search_fields=("assetId", "name", "serialNumber", "location"),
        search_param="search",
        server_facets={
            "type": "assetType",
            "status": "status",
            "category": "categoryId",
        },
        comparators={
            "assetId": pipeline.text("assetId"),
            "name": pipeline.text("name"),
            "purchasePrice": pipeline.numeric("purchasePrice"),
            "maintenanceDate": pipeline.date_value("maintenanceDate"),
        },
        default_sort=SortSpec(key="name"),
        input_model=AssetInput,
    )


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class AssetCategoryInput(PageInput):
    name: str
    assetType: AssetType | None = Field(default=None, validate_default=True)
    description: str | None = None

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        return require_text(value, "Category name is required")

    @field_validator("assetType", mode="before")
    @classmethod
    def _asset_type_required(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError("Asset type is required")
        return value

    @field_validator("description")
    @classmethod
    def _blank_is_none(cls, value: str | None) -> str | None:
        return optional_text(value)


def category_delete_guard(entity: dict[str, Any]) -> str | None:
    """Categories that still hold assets cannot be deleted."""
    assigned = pipeline.get_field(entity, "_count.assets") or 0
    if assigned > 0:
        noun = "asset" if assigned == 1 else "assets"
        return f"Cannot delete category with {assigned} {noun} assigned"
    return None


def asset_categories() -> ListSpec:
    return ListSpec(
        name="asset-categories",
        label="category",
        endpoint=ResourceEndpoint(
            path="/api/assets/categories",
            collection_keys=("categories", "items", "data"),
            entity_keys=("category", "item", "data"),
            update_style="path",
            delete_style="path",
        ),
        search_fields=("name", "description"),
        server_facets={"assetType": "assetType"},
        comparators={
            "name": pipeline.text("name"),
            "assetType": pipeline.text("assetType"),
            "assets": pipeline.numeric("_count.assets"),
            "createdAt": pipeline.date_value("createdAt"),
        },
        default_sort=SortSpec(key="name"),
        input_model=AssetCategoryInput,
        delete_guard=category_delete_guard,
        create_mode=MutationMode.SAFE,
        update_mode=MutationMode.SAFE,
        delete_mode=MutationMode.SAFE,
    )
