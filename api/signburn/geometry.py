"""Coordinate conversions between editor pixels, normalized fields and PDF points.

Fields are stored in the unit square measured from the page's top-left
corner.  The editor works in pixels of whatever resolution it rendered the
page at, and PDF drawing happens in points from the bottom-left corner.
"""

from __future__ import annotations

from typing import NamedTuple


class Rect(NamedTuple):
    x: float
    y: float
    width: float
    height: float


EMPTY = Rect(0.0, 0.0, 0.0, 0.0)


def _ratio(value: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return value / total


def to_normalized(
    pixel_x: float,
    pixel_y: float,
    pixel_width: float,
    pixel_height: float,
    container_width: float,
    container_height: float,
) -> Rect:
    """Pixel rectangle inside a rendered page -> fractions of that page.

    A zero-sized container yields zeros for the affected axis.
    """
    return Rect(
        _ratio(pixel_x, container_width),
        _ratio(pixel_y, container_height),
        _ratio(pixel_width, container_width),
        _ratio(pixel_height, container_height),
    )


def to_pixels(
    x: float,
    y: float,
    width: float,
    height: float,
    container_width: float,
    container_height: float,
) -> Rect:
    """Inverse of :func:`to_normalized`."""
    container_width = max(container_width, 0.0)
    container_height = max(container_height, 0.0)
    return Rect(
        x * container_width,
        y * container_height,
        width * container_width,
        height * container_height,
    )


def clamp_to_page(rect: Rect) -> Rect:
    """Shift a normalized rect so its top-left corner keeps it on the page."""
    x = max(0.0, min(rect.x, 1.0 - rect.width))
    y = max(0.0, min(rect.y, 1.0 - rect.height))
    return Rect(x, y, rect.width, rect.height)


def to_pdf_box(
    x: float,
    y: float,
    width: float,
    height: float,
    page_width: float,
    page_height: float,
    origin: tuple[float, float] = (0.0, 0.0),
) -> Rect:
    """Normalized top-left geometry -> PDF user space (bottom-left origin).

    ``origin`` is the lower-left corner of the page's media box, which is
    not always (0, 0).
    """
    box_width = width * page_width
    box_height = height * page_height
    box_x = x * page_width
    box_y = page_height - y * page_height - box_height
    return Rect(origin[0] + box_x, origin[1] + box_y, box_width, box_height)


def fit_within(image_width: float, image_height: float, box_width: float, box_height: float) -> Rect:
    """Scale an image to fit a box, keeping its aspect ratio, centered.

    Returns the draw rect relative to the box's lower-left corner.
    """
    if image_width <= 0 or image_height <= 0 or box_width <= 0 or box_height <= 0:
        return EMPTY
    image_aspect = image_width / image_height
    box_aspect = box_width / box_height
    if image_aspect > box_aspect:
        draw_width = box_width
        draw_height = box_width / image_aspect
    else:
        draw_height = box_height
        draw_width = box_height * image_aspect
    return Rect(
        (box_width - draw_width) / 2,
        (box_height - draw_height) / 2,
        draw_width,
        draw_height,
    )
