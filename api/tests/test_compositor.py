import logging
import os
from datetime import date
from io import BytesIO

import pytest
import reportlab
from PIL import Image
from pypdf import PdfReader

from signburn import compositor as compositor_module
from signburn.compositor import PdfCompositor, burn_fields, decode_image, missing_glyphs, page_sizes
from signburn.errors import CompositionFailed
from signburn.fields import FieldData

from factories import SIMPLE_SIGNATURE_B64, data_url, field, make_image, make_pdf


def fields_of(*payloads):
    return [FieldData.model_validate(p) for p in payloads]


def page_content(pdf_bytes: bytes, index: int) -> bytes:
    return PdfReader(BytesIO(pdf_bytes)).pages[index].get_contents().get_data()


def test_page_sizes_reads_geometry():
    assert page_sizes(make_pdf([(612, 792), (200, 100)])) == [(612.0, 792.0), (200.0, 100.0)]


def test_unreadable_source_is_fatal():
    with pytest.raises(CompositionFailed):
        PdfCompositor(b"definitely not a pdf")


def test_text_field_geometry_and_output():
    pdf = make_pdf()
    compositor = PdfCompositor(pdf)
    [op] = compositor.plan(fields_of(field("f1", "text", value="Alice")))
    # box: x=61.2, y=673.2, h=39.6 -> font capped at 14
    assert op.kind == "text"
    assert op.font_size == pytest.approx(14)
    assert op.x == pytest.approx(61.2 + 4)
    assert op.y == pytest.approx(673.2 + 39.6 / 2 - 7)

    out = compositor.render(fields_of(field("f1", "text", value="Alice")))
    assert b"Alice" in page_content(out, 0)
    assert b"Alice" not in page_content(out, 1)


def test_small_text_box_scales_font():
    [op] = PdfCompositor(make_pdf([(100, 100)])).plan(
        fields_of(field("f1", "text", height=0.1, value="tiny"))
    )
    assert op.font_size == pytest.approx(7)


def test_empty_text_field_draws_nothing():
    compositor = PdfCompositor(make_pdf())
    assert compositor.plan(fields_of(field("f1", "text"))) == []
    assert compositor.warnings == []


def test_out_of_range_page_is_skipped_with_warning():
    pdf = make_pdf()
    compositor = PdfCompositor(pdf)
    payload = fields_of(
        field("far", "text", page=3, value="nowhere"),
        field("near", "text", page=2, value="Bob"),
    )
    ops = compositor.plan(payload)
    assert [op.field_id for op in ops] == ["near"]
    assert len(compositor.warnings) == 1
    assert "far" in compositor.warnings[0]

    out = burn_fields(pdf, payload)
    assert len(PdfReader(BytesIO(out)).pages) == 2
    assert b"Bob" in page_content(out, 1)


def test_signature_fits_inside_box_preserving_aspect():
    compositor = PdfCompositor(make_pdf([(200, 100)]))
    wide = data_url(make_image(400, 100))
    [op] = compositor.plan(fields_of(field("sig", "signature", x=0, y=0, width=1, height=1)), wide)
    assert (op.x, op.y, op.width, op.height) == pytest.approx((0, 25, 200, 50))

    square = data_url(make_image(100, 100))
    [op] = compositor.plan(fields_of(field("sig", "signature", x=0, y=0, width=1, height=1)), square)
    assert (op.x, op.y, op.width, op.height) == pytest.approx((50, 0, 100, 100))


def test_signature_image_is_shared_by_every_signature_field():
    compositor = PdfCompositor(make_pdf())
    ops = compositor.plan(
        fields_of(
            field("s1", "signature", page=1),
            field("s2", "signature", page=2, x=0.5),
        ),
        SIMPLE_SIGNATURE_B64,
    )
    assert [op.page_index for op in ops] == [0, 1]
    assert ops[0].image is ops[1].image


def test_missing_signature_renders_nothing():
    pdf = make_pdf()
    compositor = PdfCompositor(pdf)
    assert compositor.plan(fields_of(field("sig", "signature"))) == []
    out = compositor.render(fields_of(field("sig", "signature")))
    assert len(PdfReader(BytesIO(out)).pages) == 2


def test_undecodable_signature_is_ignored():
    compositor = PdfCompositor(make_pdf())
    assert compositor.plan(fields_of(field("sig", "signature")), "data:image/png;base64,AAAA") == []
    assert len(compositor.warnings) == 1


def test_image_field_falls_back_to_jpeg():
    jpeg = data_url(make_image(50, 50, "JPEG"), "image/jpeg")
    [op] = PdfCompositor(make_pdf()).plan(fields_of(field("img", "image", value=jpeg)))
    assert op.kind == "image"
    assert op.image.format == "JPEG"


@pytest.mark.parametrize("value", ["not base64 at all!", data_url(b"plain bytes, not an image")])
def test_bad_image_field_is_skipped_not_fatal(value):
    pdf = make_pdf()
    compositor = PdfCompositor(pdf)
    payload = fields_of(field("img", "image", value=value), field("t", "text", value="still here"))
    out = compositor.render(payload)
    assert len(compositor.warnings) == 1
    assert b"still here" in page_content(out, 0)


def test_decode_image_rejects_other_formats():
    gif = BytesIO()
    Image.new("RGB", (4, 4)).save(gif, "GIF")
    with pytest.raises(ValueError):
        decode_image(data_url(gif.getvalue(), "image/gif"))


def test_date_defaults_to_today():
    [op] = PdfCompositor(make_pdf()).plan(fields_of(field("d", "date")), today=date(2024, 3, 5))
    assert op.text == "03/05/2024"
    assert op.font_size == pytest.approx(min(39.6 * 0.6, 12))


def test_date_keeps_given_value():
    [op] = PdfCompositor(make_pdf()).plan(fields_of(field("d", "date", value="1 May 2024")))
    assert op.text == "1 May 2024"


@pytest.mark.parametrize("value, filled", [("true", True), ("selected", True), ("false", False), (None, False)])
def test_radio_circle(value, filled):
    [op] = PdfCompositor(make_pdf([(100, 100)])).plan(
        fields_of(field("r", "radio", x=0.1, y=0.1, width=0.2, height=0.1, value=value))
    )
    assert op.kind == "circle"
    assert op.filled is filled
    assert op.radius == pytest.approx(10 / 2 - 2)
    assert (op.x, op.y) == pytest.approx((20, 85))


def test_empty_box_is_skipped():
    compositor = PdfCompositor(make_pdf())
    assert compositor.plan(fields_of(field("r", "radio", width=0, value="true"))) == []
    assert len(compositor.warnings) == 1


def test_overflowing_field_still_renders():
    out = burn_fields(make_pdf(), fields_of(field("t", "text", x=0.9, width=0.5, value="edge")))
    assert b"edge" in page_content(out, 0)


def test_later_fields_draw_on_top():
    ops = PdfCompositor(make_pdf()).plan(
        fields_of(field("a", "text", value="under"), field("b", "text", value="over"))
    )
    assert [op.field_id for op in ops] == ["a", "b"]
    out = burn_fields(make_pdf(), fields_of(field("a", "text", value="under"), field("b", "text", value="over")))
    data = page_content(out, 0)
    assert data.index(b"under") < data.index(b"over")


def test_rendering_is_deterministic():
    pdf = make_pdf()
    payload = fields_of(
        field("t", "text", value="Alice"),
        field("s", "signature", page=2),
        field("r", "radio", value="true"),
    )
    first = burn_fields(pdf, payload, SIMPLE_SIGNATURE_B64, today=date(2024, 1, 1))
    second = burn_fields(pdf, payload, SIMPLE_SIGNATURE_B64, today=date(2024, 1, 1))
    for index in range(2):
        assert page_content(first, index) == page_content(second, index)


def test_decompression_bomb_is_a_decode_error():
    huge = BytesIO()
    Image.new("1", (15000, 15000)).save(huge, "PNG")
    with pytest.raises(ValueError, match="too large"):
        decode_image(data_url(huge.getvalue()))


def test_oversized_image_field_is_skipped(monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
    compositor = PdfCompositor(make_pdf())
    payload = fields_of(
        field("img", "image", value=data_url(make_image(60, 30))),
        field("t", "text", value="kept"),
    )
    out = compositor.render(payload)
    assert len(compositor.warnings) == 1
    assert "img" in compositor.warnings[0]
    assert b"kept" in page_content(out, 0)


def test_oversized_signature_is_ignored(monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
    compositor = PdfCompositor(make_pdf())
    assert compositor.plan(fields_of(field("sig", "signature")), data_url(make_image(60, 30))) == []
    assert len(compositor.warnings) == 1


def test_standard_font_glyph_coverage():
    assert missing_glyphs("Jürgen Ωmega ✓", "Helvetica") == ""
    assert missing_glyphs("张三 signs", "Helvetica") == "张三"


def test_text_without_glyphs_is_drawn_and_logged(caplog):
    compositor = PdfCompositor(make_pdf())
    with caplog.at_level(logging.WARNING, logger="signburn.compositor"):
        [op] = compositor.plan(fields_of(field("name", "text", value="张三")))
    assert op.text == "张三"
    assert compositor.warnings == []
    assert "张三" in caplog.text


def test_configured_ttf_is_used_for_text(monkeypatch):
    vera = os.path.join(os.path.dirname(reportlab.__file__), "fonts", "Vera.ttf")
    monkeypatch.setattr(compositor_module, "FONT_PATH", vera)
    compositor = PdfCompositor(make_pdf())
    payload = fields_of(field("t", "text", value="Jürgen"), field("d", "date", value="05/03/2024"))
    ops = compositor.plan(payload)
    assert {op.font_name for op in ops} == {compositor_module.UNICODE_FONT_NAME}
    assert missing_glyphs("Jürgen", compositor_module.UNICODE_FONT_NAME) == ""

    out = compositor.render(payload)
    fonts = PdfReader(BytesIO(out)).pages[0]["/Resources"]["/Font"]
    assert any("Vera" in str(f.get_object()["/BaseFont"]) for f in fonts.values())


def test_unloadable_font_is_fatal(monkeypatch, tmp_path):
    bogus = tmp_path / "bogus.ttf"
    bogus.write_bytes(b"not a font")
    monkeypatch.setattr(compositor_module, "FONT_PATH", str(bogus))
    monkeypatch.setattr(compositor_module, "UNICODE_FONT_NAME", "SignburnTextBogus")
    with pytest.raises(CompositionFailed):
        PdfCompositor(make_pdf()).render(fields_of(field("t", "text", value="x")))
