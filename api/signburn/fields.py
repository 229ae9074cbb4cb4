"""Field model shared by the editor API, storage and the compositor."""

from __future__ import annotations

from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from .geometry import Rect, clamp_to_page, to_normalized


class FieldType(str, Enum):
    TEXT = "text"
    SIGNATURE = "signature"
    IMAGE = "image"
    DATE = "date"
    RADIO = "radio"


CHECKED_VALUES = frozenset({"true", "selected"})

# normalized (width, height) used when a field is dropped onto a page
DEFAULT_FIELD_SIZES: dict[FieldType, tuple[float, float]] = {
    FieldType.TEXT: (0.2, 0.04),
    FieldType.SIGNATURE: (0.2, 0.08),
    FieldType.IMAGE: (0.15, 0.12),
    FieldType.DATE: (0.15, 0.04),
    FieldType.RADIO: (0.03, 0.03),
}


class FieldData(BaseModel):
    """A field placed on a page, in normalized page coordinates.

    ``x``/``y`` are measured from the page's top-left corner.  Overflow past
    the right or bottom edge is allowed and simply draws off the page.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    type: FieldType
    page_number: int = Field(alias="pageNumber", ge=1)
    x: float = Field(ge=0, le=1)
    y: float = Field(ge=0, le=1)
    width: float = Field(ge=0, le=1)
    height: float = Field(ge=0, le=1)
    value: Optional[str] = None
    required: bool = False

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)

    @property
    def checked(self) -> bool:
        return self.value in CHECKED_VALUES

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def new_field_id() -> str:
    return f"field_{uuid4().hex[:12]}"


def place_field(
    field_type: FieldType,
    page_number: int,
    pixel_x: float,
    pixel_y: float,
    container_width: float,
    container_height: float,
) -> FieldData:
    """Build a default-sized field dropped at a pixel position of a rendered page."""
    norm_width, norm_height = DEFAULT_FIELD_SIZES[field_type]
    rect = to_normalized(
        pixel_x,
        pixel_y,
        norm_width * container_width,
        norm_height * container_height,
        container_width,
        container_height,
    )
    rect = clamp_to_page(rect)
    return FieldData(
        id=new_field_id(),
        type=field_type,
        page_number=page_number,
        x=rect.x,
        y=rect.y,
        width=rect.width,
        height=rect.height,
        required=True,
    )
