"""
Document Model Base

Stored documents use camelCase field names (the layout the web client
reads and writes); Python code uses snake_case attributes. Every persisted
model derives from DocumentModel so the mapping lives in one place.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_storable(value: Any) -> Any:
    """
    Convert a dumped model value into plain storable types.

    Enums become their values and Decimals become floats (document
    stores have no decimal type). Datetimes are kept as-is.
    """
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: to_storable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_storable(v) for v in value]
    return value


class CamelModel(BaseModel):
    """Model stored with camelCase keys (nested values included)."""

    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )


class DocumentModel(CamelModel):
    """Base for every model persisted in the document store."""

    id: Optional[str] = None

    def to_document(self) -> dict:
        """Serialize for storage (camelCase keys, no id)."""
        return to_storable(self.model_dump(by_alias=True, exclude={"id"}))

    @classmethod
    def from_document(cls, data: dict):
        """Build a model from a stored document (which carries its id)."""
        return cls.model_validate(data)
