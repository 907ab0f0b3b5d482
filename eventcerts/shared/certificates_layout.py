from __future__ import annotations

from typing import Iterable

# Height (px) of the authoring preview the layout editor draws on. Font sizes
# are authored against this height and scaled to the real template.
REFERENCE_HEIGHT_PX = 850

# Names longer than this shrink proportionally.
NAME_THRESHOLD_CHARS = 28
# Smallest font size (px) a shrunk name may reach.
MIN_FONT_PX = 10

# The name is drawn on a canvas larger than the authored box so glyph
# overhang is never clipped.
NAME_MARGIN_W = 1.6
NAME_MARGIN_H = 1.8
NAME_MIN_PADDING_PX = 20

# Left/right aligned text sits this many ems inside the canvas edge.
ALIGN_INSET_EM = 0.6

FONT_SIZE_MIN = 8
FONT_SIZE_MAX = 200

QR_ERROR_CORRECTION = "H"
QR_QUIET_ZONE_MODULES = 1
QR_MIN_PX = 60
QR_DEFAULT_SIZE = 0.06
QR_SIZE_MIN = 0.01
QR_DARK = "#000000"
QR_LIGHT = "#ffffff"

BATCH_WORKERS_DEFAULT = 4
DEADLINE_SECONDS_DEFAULT = 30.0
MAX_TEMPLATE_PIXELS_DEFAULT = 40_000_000

ALIGN_CHOICES: tuple[str, ...] = ("left", "center", "right")
DEFAULT_ALIGN = "center"
DEFAULT_FONT_FAMILY = "Poppins"
DEFAULT_FONT_COLOR = "#0ea5e9"
DEFAULT_FONT_SIZE = 48

# Font families offered by the layout editor, mapped to candidate TrueType
# files relative to the configured font directory.
FONT_FILES: dict[str, tuple[str, ...]] = {
    "Poppins": ("Poppins-SemiBold.ttf", "poppins/Poppins-SemiBold.ttf"),
    "Inter": ("Inter-SemiBold.ttf", "inter/Inter-SemiBold.ttf"),
    "Roboto": ("Roboto-Medium.ttf", "roboto/Roboto-Medium.ttf"),
    "Montserrat": ("Montserrat-SemiBold.ttf", "montserrat/Montserrat-SemiBold.ttf"),
    "DejaVu Sans": ("dejavu/DejaVuSans-Bold.ttf", "DejaVuSans-Bold.ttf"),
    "DejaVu Serif": ("dejavu/DejaVuSerif-Bold.ttf", "DejaVuSerif-Bold.ttf"),
    "Liberation Sans": (
        "liberation/LiberationSans-Bold.ttf",
        "LiberationSans-Bold.ttf",
    ),
}
FALLBACK_FONT_FILES: tuple[str, ...] = (
    "dejavu/DejaVuSans-Bold.ttf",
    "DejaVuSans-Bold.ttf",
    "liberation/LiberationSans-Bold.ttf",
)


def normalize_align(value: str | None) -> str:
    align = (value or "").strip().lower()
    if align in ALIGN_CHOICES:
        return align
    return DEFAULT_ALIGN


def font_file_candidates(family: str | None) -> list[str]:
    """Candidate font files for ``family``, most specific first."""
    candidates: list[str] = []

    def _extend(values: Iterable[str]) -> None:
        for value in values:
            if value not in candidates:
                candidates.append(value)

    if family:
        for known, files in FONT_FILES.items():
            if known.lower() == family.strip().lower():
                _extend(files)
                break
    _extend(FALLBACK_FONT_FILES)
    return candidates
