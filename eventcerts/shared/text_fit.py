from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass

from PIL import Image, ImageColor, ImageDraw, ImageFont

from .certificates_layout import (
    ALIGN_INSET_EM,
    MIN_FONT_PX,
    NAME_MARGIN_H,
    NAME_MARGIN_W,
    NAME_MIN_PADDING_PX,
    NAME_THRESHOLD_CHARS,
    REFERENCE_HEIGHT_PX,
    font_file_candidates,
    normalize_align,
)
from .layout import PixelBox
from .submissions import FontSpec, normalize_color

logger = logging.getLogger("eventcerts.text")

_PIL_ANCHORS = {"left": "lm", "center": "mm", "right": "rm"}


@dataclass(frozen=True)
class NameLayerPlan:
    font_size: int
    canvas_width: int
    canvas_height: int
    left: int
    top: int
    anchor_x: float
    anchor_y: float
    anchor: str


def fit_font_size(
    nominal_size: float,
    name_length: int,
    threshold_chars: int = NAME_THRESHOLD_CHARS,
    floor_size: int = MIN_FONT_PX,
    scale_factor: float = 1.0,
) -> int:
    """Pick the render size (px) for a name of ``name_length`` characters.

    ``scale_factor`` is template height over the authoring reference
    height. Past ``threshold_chars`` the size shrinks in proportion to the
    length and never drops below ``floor_size``.
    """
    base = max(floor_size, int(math.floor(nominal_size * scale_factor + 0.5)))
    if threshold_chars > 0 and name_length > threshold_chars:
        shrunk = int(math.floor(base * threshold_chars / name_length))
        return max(floor_size, shrunk)
    return base


def _ceil_px(value: float) -> int:
    # 600 * 1.6 must stay 960, not 961
    return max(1, int(math.ceil(round(value, 6))))


def plan_name_layer(
    name: str,
    box: PixelBox,
    font: FontSpec,
    template_height: int,
    *,
    reference_height: float = REFERENCE_HEIGHT_PX,
    threshold_chars: int = NAME_THRESHOLD_CHARS,
    floor_size: int = MIN_FONT_PX,
    margin_w: float = NAME_MARGIN_W,
    margin_h: float = NAME_MARGIN_H,
    min_padding: int = NAME_MIN_PADDING_PX,
    inset_em: float = ALIGN_INSET_EM,
) -> NameLayerPlan:
    font_size = fit_font_size(
        font.size,
        len(name),
        threshold_chars,
        floor_size,
        template_height / float(reference_height),
    )
    canvas_w = _ceil_px(max(box.width * margin_w, box.width + min_padding))
    canvas_h = _ceil_px(max(box.height * margin_h, box.height + min_padding))

    # expanded canvas shares the authored box's center
    left = int(round(box.left - (canvas_w - box.width) / 2.0))
    top = int(round(box.top - (canvas_h - box.height) / 2.0))

    align = normalize_align(font.align)
    inset = font_size * inset_em
    if align == "left":
        anchor_x = inset
    elif align == "right":
        anchor_x = canvas_w - inset
    else:
        anchor_x = canvas_w / 2.0
    return NameLayerPlan(
        font_size=font_size,
        canvas_width=canvas_w,
        canvas_height=canvas_h,
        left=left,
        top=top,
        anchor_x=anchor_x,
        anchor_y=canvas_h / 2.0,
        anchor=_PIL_ANCHORS[align],
    )


def load_font(family: str | None, size_px: int, font_dir: str | None = None):
    size_px = max(int(size_px), 1)
    for candidate in font_file_candidates(family):
        path = os.path.join(font_dir, candidate) if font_dir else candidate
        if not os.path.isfile(path):
            continue
        try:
            return ImageFont.truetype(path, size_px)
        except OSError:
            logger.warning("[CERT-FONT] unreadable font file path=%s", path)
    logger.warning(
        "[CERT-FONT] family=%s not found under %s; using built-in font",
        family or "<default>",
        font_dir or "<cwd>",
    )
    return ImageFont.load_default(size=size_px)


def render_name_layer(
    name: str, plan: NameLayerPlan, font: FontSpec, font_dir: str | None = None
) -> Image.Image:
    """Draw ``name`` on a transparent canvas sized by ``plan``."""
    layer = Image.new("RGBA", (plan.canvas_width, plan.canvas_height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    pil_font = load_font(font.family, plan.font_size, font_dir)
    red, green, blue = ImageColor.getrgb(normalize_color(font.color))[:3]
    draw.text(
        (plan.anchor_x, plan.anchor_y),
        name,
        font=pil_font,
        fill=(red, green, blue, 255),
        anchor=plan.anchor,
    )
    return layer
