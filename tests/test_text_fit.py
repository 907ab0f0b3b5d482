import pytest

from eventcerts.shared.certificates_layout import (
    MIN_FONT_PX,
    NAME_MARGIN_H,
    NAME_MARGIN_W,
    NAME_THRESHOLD_CHARS,
    REFERENCE_HEIGHT_PX,
)
from eventcerts.shared.layout import NormalizedBox, resolve_box
from eventcerts.shared.submissions import FontSpec
from eventcerts.shared.text_fit import (
    fit_font_size,
    load_font,
    plan_name_layer,
    render_name_layer,
)


def _font(align="center", size=48):
    return FontSpec(family="Poppins", size=size, color="#0ea5e9", align=align)


def test_short_names_keep_scaled_base_size():
    assert fit_font_size(48, 5, 28, 10, 1400 / 850) == 79
    assert fit_font_size(48, 28, 28, 10, 1.0) == 48


def test_size_is_non_increasing_past_threshold_and_floored():
    previous = None
    for length in range(NAME_THRESHOLD_CHARS + 1, 600):
        size = fit_font_size(48, length, NAME_THRESHOLD_CHARS, MIN_FONT_PX, 1.0)
        assert size >= MIN_FONT_PX
        if previous is not None:
            assert size <= previous
        previous = size
    assert previous == MIN_FONT_PX


def test_floor_applies_to_tiny_base_sizes():
    assert fit_font_size(8, 3, 28, 10, 0.2) == 10


def test_long_name_is_smaller_than_short_name():
    short = fit_font_size(48, len("Al"), 28, 10, 1.0)
    long = fit_font_size(48, 40, 28, 10, 1.0)
    assert long < short


def test_worked_example_29_chars_on_2000x1400():
    box = resolve_box(NormalizedBox(0.2, 0.4, 0.3, 0.1), 2000, 1400)
    name = "A" * 29
    plan = plan_name_layer(name, box, _font(), 1400)
    base = round(48 * 1400 / REFERENCE_HEIGHT_PX)
    assert plan.font_size < base
    assert plan.canvas_width == round(box.width * NAME_MARGIN_W)
    assert plan.canvas_height == round(box.height * NAME_MARGIN_H)
    assert plan.canvas_width > box.width
    assert plan.canvas_height > box.height


def test_canvas_is_centered_on_box():
    box = resolve_box(NormalizedBox(0.2, 0.4, 0.3, 0.1), 2000, 1400)
    plan = plan_name_layer("Jane Doe", box, _font(), 1400)
    canvas_center = (plan.left + plan.canvas_width / 2, plan.top + plan.canvas_height / 2)
    assert abs(canvas_center[0] - box.center[0]) <= 0.5
    assert abs(canvas_center[1] - box.center[1]) <= 0.5


def test_small_boxes_get_minimum_padding():
    box = resolve_box(NormalizedBox(0.5, 0.5, 0.01, 0.01), 1000, 1000)
    plan = plan_name_layer("Jo", box, _font(), 1000)
    assert plan.canvas_width == box.width + 20
    assert plan.canvas_height == box.height + 20


@pytest.mark.parametrize(
    "align, anchor",
    [("left", "lm"), ("center", "mm"), ("right", "rm"), ("diagonal", "mm")],
)
def test_anchor_follows_alignment(align, anchor):
    box = resolve_box(NormalizedBox(0.1, 0.1, 0.5, 0.2), 1000, 850)
    plan = plan_name_layer("Jane Doe", box, _font(align), 850)
    assert plan.anchor == anchor
    assert plan.anchor_y == plan.canvas_height / 2
    if align == "left":
        assert plan.anchor_x == pytest.approx(plan.font_size * 0.6)
    elif align == "right":
        assert plan.anchor_x == pytest.approx(plan.canvas_width - plan.font_size * 0.6)
    else:
        assert plan.anchor_x == plan.canvas_width / 2


def test_render_name_layer_draws_on_transparent_canvas(tmp_path):
    box = resolve_box(NormalizedBox(0.1, 0.1, 0.5, 0.2), 1000, 850)
    plan = plan_name_layer("Jane Doe", box, _font(), 850)
    layer = render_name_layer("Jane Doe", plan, _font(), str(tmp_path))
    assert layer.mode == "RGBA"
    assert layer.size == (plan.canvas_width, plan.canvas_height)
    alpha = layer.getchannel("A")
    assert alpha.getextrema()[1] == 255
    assert alpha.getpixel((0, 0)) == 0


def test_load_font_falls_back_when_family_missing(tmp_path, caplog):
    caplog.set_level("WARNING")
    font = load_font("No Such Family", 24, str(tmp_path))
    assert font.getbbox("Hello")[2] > 0
    assert "[CERT-FONT]" in caplog.text
