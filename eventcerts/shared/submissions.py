from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from PIL import ImageColor

from .certificates_layout import (
    DEFAULT_FONT_COLOR,
    DEFAULT_FONT_FAMILY,
    DEFAULT_FONT_SIZE,
    FONT_SIZE_MAX,
    FONT_SIZE_MIN,
    QR_DEFAULT_SIZE,
    QR_SIZE_MIN,
    normalize_align,
)
from .errors import InvalidEventConfig, InvalidSubmission
from .layout import NormalizedBox, NormalizedCodeBox, clamp_unit


@dataclass(frozen=True)
class FontSpec:
    family: str
    size: int
    color: str
    align: str


@dataclass(frozen=True)
class EventConfig:
    event_id: int
    template_path: str
    name_box: NormalizedBox
    font: FontSpec
    code_box: NormalizedCodeBox


@dataclass(frozen=True)
class ParticipantSubmission:
    name: str
    email: str
    mobile: str = ""
    department: str = ""
    year: str = ""
    enrollment: str = ""


def _clamp_range(value: Any, low: float, high: float, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(low, min(high, number))


def normalize_color(value: str | None) -> str:
    """Return ``value`` if Pillow can parse it as a colour, else the default."""
    raw = (value or "").strip()
    if not raw:
        return DEFAULT_FONT_COLOR
    try:
        ImageColor.getrgb(raw)
    except ValueError:
        return DEFAULT_FONT_COLOR
    return raw


def sanitize_event_layout(layout: Mapping[str, Any] | None) -> dict:
    """Clamp a loosely-typed layout payload into storable values.

    Accepts the flat keys the layout editor posts (``nameX`` ... ``qrSize``)
    as well as snake_case column names.
    """
    layout = layout if isinstance(layout, Mapping) else {}

    def pick(*keys: str) -> Any:
        for key in keys:
            if key in layout and layout[key] not in (None, ""):
                return layout[key]
        return None

    return {
        "name_box_x": clamp_unit(pick("nameX", "name_box_x")),
        "name_box_y": clamp_unit(pick("nameY", "name_box_y")),
        "name_box_w": clamp_unit(pick("nameW", "name_box_w")),
        "name_box_h": clamp_unit(pick("nameH", "name_box_h")),
        "name_font_family": str(
            pick("nameFontFamily", "name_font_family") or DEFAULT_FONT_FAMILY
        ).strip(),
        "name_font_size": int(
            _clamp_range(
                pick("nameFontSize", "name_font_size"),
                FONT_SIZE_MIN,
                FONT_SIZE_MAX,
                DEFAULT_FONT_SIZE,
            )
        ),
        "name_font_color": normalize_color(pick("nameFontColor", "name_font_color")),
        "name_align": normalize_align(pick("nameAlign", "name_align")),
        "qr_x": clamp_unit(pick("qrX", "qr_x")),
        "qr_y": clamp_unit(pick("qrY", "qr_y")),
        "qr_size": _clamp_range(pick("qrSize", "qr_size"), QR_SIZE_MIN, 1.0, QR_DEFAULT_SIZE),
    }


def build_event_config(event_id: int, template_path: str, layout: Mapping[str, Any]) -> EventConfig:
    """Build a validated :class:`EventConfig` from column-style values."""
    clean = sanitize_event_layout(layout)
    name_box = NormalizedBox(
        clean["name_box_x"], clean["name_box_y"], clean["name_box_w"], clean["name_box_h"]
    )
    if name_box.w <= 0 or name_box.h <= 0:
        raise InvalidEventConfig(
            f"Event {event_id} name box has no area (w={name_box.w}, h={name_box.h})"
        )
    if not (template_path or "").strip():
        raise InvalidEventConfig(f"Event {event_id} has no template")
    return EventConfig(
        event_id=int(event_id),
        template_path=template_path.strip(),
        name_box=name_box,
        font=FontSpec(
            family=clean["name_font_family"],
            size=clean["name_font_size"],
            color=clean["name_font_color"],
            align=clean["name_align"],
        ),
        code_box=NormalizedCodeBox(clean["qr_x"], clean["qr_y"], clean["qr_size"]),
    )


_LAYOUT_COLUMNS = (
    "name_box_x",
    "name_box_y",
    "name_box_w",
    "name_box_h",
    "name_font_family",
    "name_font_size",
    "name_font_color",
    "name_align",
    "qr_x",
    "qr_y",
    "qr_size",
)


def event_config_from_model(event) -> EventConfig:
    layout = {column: getattr(event, column, None) for column in _LAYOUT_COLUMNS}
    return build_event_config(event.id, event.template_path or "", layout)


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split())


def parse_submission(data: Mapping[str, Any] | None) -> ParticipantSubmission:
    """Validate a raw form/CSV row into a :class:`ParticipantSubmission`."""
    data = data if isinstance(data, Mapping) else {}
    name = _clean_text(data.get("name"))
    email = _clean_text(data.get("email")).lower()
    if not name:
        raise InvalidSubmission("Participant name is required")
    if not email or "@" not in email:
        raise InvalidSubmission(f"A valid email is required for {name!r}")
    return ParticipantSubmission(
        name=name,
        email=email,
        mobile=_clean_text(data.get("mobile")),
        department=_clean_text(data.get("department") or data.get("dept")),
        year=_clean_text(data.get("year")),
        enrollment=_clean_text(data.get("enrollment") or data.get("enroll")),
    )
