"""Burn placed fields into the page content of a PDF.

Each field is resolved against its page's media box into a draw operation,
then every touched page gets a reportlab overlay merged on top of it with
pypdf.  A field that cannot be drawn (page out of range, undecodable image,
empty box) is skipped with a warning; only an unreadable source document
aborts the whole run.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from io import BytesIO
from typing import Iterable, Optional

from PIL import Image
from pypdf import PdfReader, PdfWriter
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFError, TTFont
from reportlab.pdfgen import canvas

from .config import DATE_FORMAT, FONT_PATH
from .errors import CompositionFailed
from .fields import FieldData, FieldType
from .geometry import Rect, fit_within, to_pdf_box
from .utils import data_url_to_bytes

logger = logging.getLogger(__name__)

FONT_NAME = "Helvetica"
UNICODE_FONT_NAME = "SignburnText"
TEXT_FONT_RATIO, TEXT_FONT_MAX = 0.7, 14.0
DATE_FONT_RATIO, DATE_FONT_MAX = 0.6, 12.0
TEXT_PADDING = 4.0
RADIO_MARGIN = 2.0


@dataclass
class DrawOp:
    page_index: int
    kind: str  # text|image|circle
    field_id: str
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0
    text: str = ""
    font_name: str = FONT_NAME
    font_size: float = 0.0
    image: Optional[Image.Image] = None
    radius: float = 0.0
    filled: bool = False


def decode_image(payload: str) -> Image.Image:
    """Decode a base64 image, trying PNG first and JPEG second.

    Raises ``ValueError`` if the payload is neither.
    """
    raw = data_url_to_bytes(payload)
    for fmt in ("PNG", "JPEG"):
        try:
            image = Image.open(BytesIO(raw), formats=[fmt])
            image.load()
        except Image.DecompressionBombError as exc:
            raise ValueError(f"image is too large to decode: {exc}") from exc
        except OSError:
            continue
        if image.mode not in ("RGB", "RGBA", "L"):
            image = image.convert("RGBA")
        return image
    raise ValueError("image payload is neither PNG nor JPEG")


def text_font() -> str:
    """Font for text and date fields: ``FONT_PATH`` when set, else Helvetica."""
    if not FONT_PATH:
        return FONT_NAME
    if UNICODE_FONT_NAME not in pdfmetrics.getRegisteredFontNames():
        try:
            pdfmetrics.registerFont(TTFont(UNICODE_FONT_NAME, FONT_PATH))
        except (TTFError, OSError) as exc:
            raise CompositionFailed(f"Text font {FONT_PATH} could not be loaded") from exc
    return UNICODE_FONT_NAME


def missing_glyphs(text: str, font_name: str) -> str:
    """Characters of ``text`` that ``font_name`` would draw as placeholder boxes."""
    font = pdfmetrics.getFont(font_name)
    if hasattr(getattr(font, "face", None), "charToGlyph"):
        cmap = font.face.charToGlyph
        return "".join(ch for ch in text if ord(ch) not in cmap)

    # standard fonts fall back through their substitution fonts
    candidates = [font] + list(font.substitutionFonts)

    def encodable(ch):
        for candidate in candidates:
            try:
                ch.encode(candidate.encName)
            except UnicodeEncodeError:
                continue
            return True
        return False

    return "".join(ch for ch in text if not ch.isspace() and not encodable(ch))


def _overlay_page(width, height, ops):
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=(width, height), invariant=1)
    c.setFillColorRGB(0, 0, 0)
    c.setStrokeColorRGB(0, 0, 0)
    for op in ops:
        if op.kind == "text":
            c.setFont(op.font_name, op.font_size)
            c.drawString(op.x, op.y, op.text)
        elif op.kind == "circle":
            c.circle(op.x, op.y, op.radius, stroke=1, fill=1 if op.filled else 0)
        elif op.kind == "image":
            c.drawImage(ImageReader(op.image), op.x, op.y, width=op.width, height=op.height, mask="auto")
    c.showPage()
    c.save()
    return buf.getvalue()


class PdfCompositor:
    def __init__(self, pdf_bytes: bytes):
        try:
            self.reader = PdfReader(BytesIO(pdf_bytes))
            self.pages = list(self.reader.pages)
            self._boxes = [
                (
                    float(p.mediabox.left),
                    float(p.mediabox.bottom),
                    float(p.mediabox.width),
                    float(p.mediabox.height),
                )
                for p in self.pages
            ]
        except Exception as exc:
            raise CompositionFailed("Source is not a readable PDF document") from exc
        self.warnings: list[str] = []
        self._font_name: Optional[str] = None

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def page_sizes(self) -> list[tuple[float, float]]:
        return [(w, h) for _, _, w, h in self._boxes]

    def _skip(self, field: FieldData, reason: str):
        message = f"field {field.id} ({field.type.value}) skipped: {reason}"
        logger.warning(message)
        self.warnings.append(message)

    def _shared_signature(self, signature_image: Optional[str]) -> Optional[Image.Image]:
        if not signature_image:
            return None
        try:
            return decode_image(signature_image)
        except ValueError as exc:
            message = f"signature image ignored: {exc}"
            logger.warning(message)
            self.warnings.append(message)
            return None

    def plan(
        self,
        fields: Iterable[FieldData],
        signature_image: Optional[str] = None,
        today: Optional[date] = None,
    ) -> list[DrawOp]:
        """Resolve fields, in order, into page-local draw operations."""
        signature = self._shared_signature(signature_image)
        today = today or date.today()
        ops = []
        for field in fields:
            op = self._plan_field(field, signature, today)
            if op is not None:
                ops.append(op)
        return ops

    def _plan_field(self, field: FieldData, signature, today: date) -> Optional[DrawOp]:
        page_index = field.page_number - 1
        if page_index < 0 or page_index >= self.page_count:
            self._skip(field, f"page {field.page_number} out of range (document has {self.page_count})")
            return None
        left, bottom, page_width, page_height = self._boxes[page_index]
        box = to_pdf_box(
            field.x, field.y, field.width, field.height,
            page_width, page_height, origin=(left, bottom),
        )
        if box.width <= 0 or box.height <= 0:
            self._skip(field, "empty box")
            return None

        if field.type is FieldType.SIGNATURE:
            if signature is None:
                return None
            return self._image_op(page_index, field, box, signature)
        elif field.type is FieldType.IMAGE:
            if not field.value:
                return None
            try:
                image = decode_image(field.value)
            except ValueError as exc:
                self._skip(field, str(exc))
                return None
            return self._image_op(page_index, field, box, image)
        elif field.type is FieldType.TEXT:
            if not field.value:
                return None
            size = min(box.height * TEXT_FONT_RATIO, TEXT_FONT_MAX)
            return self._text_op(page_index, field, box, field.value, size)
        elif field.type is FieldType.DATE:
            text = field.value or today.strftime(DATE_FORMAT)
            size = min(box.height * DATE_FONT_RATIO, DATE_FONT_MAX)
            return self._text_op(page_index, field, box, text, size)
        elif field.type is FieldType.RADIO:
            half = min(box.width, box.height) / 2
            radius = half - RADIO_MARGIN if half > RADIO_MARGIN else half
            return DrawOp(
                page_index, "circle", field.id,
                x=box.x + box.width / 2,
                y=box.y + box.height / 2,
                radius=radius,
                filled=field.checked,
            )
        raise ValueError(f"unsupported field type: {field.type!r}")

    @staticmethod
    def _image_op(page_index: int, field: FieldData, box: Rect, image: Image.Image) -> DrawOp:
        fit = fit_within(image.width, image.height, box.width, box.height)
        return DrawOp(
            page_index, "image", field.id,
            x=box.x + fit.x,
            y=box.y + fit.y,
            width=fit.width,
            height=fit.height,
            image=image,
        )

    @property
    def font_name(self) -> str:
        if self._font_name is None:
            self._font_name = text_font()
        return self._font_name

    def _text_op(self, page_index: int, field: FieldData, box: Rect, text: str, size: float) -> DrawOp:
        missing = missing_glyphs(text, self.font_name)
        if missing:
            # still drawn; the reader sees boxes for these
            logger.warning(
                "field %s text has characters %s has no glyphs for: %r",
                field.id, self.font_name, missing,
            )
        return DrawOp(
            page_index, "text", field.id,
            x=box.x + TEXT_PADDING,
            y=box.y + box.height / 2 - size / 2,
            text=text,
            font_name=self.font_name,
            font_size=size,
        )

    def render(
        self,
        fields: Iterable[FieldData],
        signature_image: Optional[str] = None,
        today: Optional[date] = None,
    ) -> bytes:
        draw_map = defaultdict(list)  # page_index -> [ops]
        for op in self.plan(fields, signature_image, today):
            draw_map[op.page_index].append(op)
        try:
            writer = PdfWriter()
            for page in self.pages:
                writer.add_page(page)
            for pidx, ops in draw_map.items():
                left, bottom, width, height = self._boxes[pidx]
                overlay_pdf = _overlay_page(left + width, bottom + height, ops)
                overlay_reader = PdfReader(BytesIO(overlay_pdf))
                writer.pages[pidx].merge_page(overlay_reader.pages[0])
            out = BytesIO()
            writer.write(out)
        except Exception as exc:
            raise CompositionFailed("Failed to write the composited PDF") from exc
        return out.getvalue()


def burn_fields(
    pdf_bytes: bytes,
    fields: Iterable[FieldData],
    signature_image: Optional[str] = None,
    today: Optional[date] = None,
) -> bytes:
    return PdfCompositor(pdf_bytes).render(fields, signature_image, today)


def page_sizes(pdf_bytes: bytes) -> list[tuple[float, float]]:
    return PdfCompositor(pdf_bytes).page_sizes()
