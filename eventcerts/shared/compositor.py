from __future__ import annotations

from io import BytesIO

from PIL import Image, UnidentifiedImageError

from .certificates_layout import MAX_TEMPLATE_PIXELS_DEFAULT
from .errors import CompositingFailure, TemplateUnreadable


def decode_template(data: bytes, *, max_pixels: int = MAX_TEMPLATE_PIXELS_DEFAULT) -> Image.Image:
    """Decode template bytes, refusing images larger than ``max_pixels``."""
    try:
        image = Image.open(BytesIO(data))
        width, height = image.size
        if max_pixels and width * height > max_pixels:
            raise TemplateUnreadable(
                f"Template is {width}x{height}px, above the {max_pixels} pixel limit"
            )
        image.load()
    except TemplateUnreadable:
        raise
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise TemplateUnreadable(f"Template could not be decoded: {exc}") from exc
    if width <= 0 or height <= 0:
        raise TemplateUnreadable("Template has no pixels")
    return image


def _has_alpha(image: Image.Image) -> bool:
    return "A" in image.getbands() or "transparency" in image.info


def composite_layers(
    template: Image.Image,
    name_layer: Image.Image,
    name_position: tuple[int, int],
    code_layer: Image.Image,
    code_position: tuple[int, int],
) -> Image.Image:
    """Stack template, name and code layers; output keeps template size.

    Layers are pasted, so anything outside the template is clipped rather
    than growing the canvas.
    """
    try:
        canvas = template.convert("RGBA")
        name_rgba = name_layer.convert("RGBA")
        canvas.paste(name_rgba, name_position, name_rgba)
        canvas.paste(code_layer.convert("RGBA"), code_position)
        if not _has_alpha(template):
            canvas = canvas.convert("RGB")
    except (TypeError, ValueError, OSError, MemoryError) as exc:
        raise CompositingFailure(f"Layers could not be merged: {exc}") from exc
    if canvas.size != template.size:
        raise CompositingFailure(
            f"Composite changed size {template.size} -> {canvas.size}"
        )
    return canvas


def encode_png(image: Image.Image) -> bytes:
    buffer = BytesIO()
    try:
        image.save(buffer, format="PNG")
    except (ValueError, OSError) as exc:
        raise CompositingFailure(f"PNG encoding failed: {exc}") from exc
    return buffer.getvalue()
