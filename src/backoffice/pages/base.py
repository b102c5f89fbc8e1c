"""Shared pieces for page configurations."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

# Page sizes offered by the list footers.
PAGE_SIZE_OPTIONS: tuple[int, ...] = (10, 25, 50, 100)


class PageInput(BaseModel):
    """Base for create/update input models.

    Unknown keys (ids, nested relations echoed back by the API) are ignored
    rather than rejected so a merged entity can be validated as-is.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


def require_text(value: str | None, message: str) -> str:
    """Return *value* stripped, or raise ``ValueError(message)`` when blank."""
    if value is None or not str(value).strip():
        raise ValueError(message)
    return str(value).strip()


def optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None
