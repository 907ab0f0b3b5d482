from __future__ import annotations

import logging
from urllib.parse import parse_qs, quote, urlencode, urlsplit

import qrcode
from qrcode.constants import (
    ERROR_CORRECT_H,
    ERROR_CORRECT_L,
    ERROR_CORRECT_M,
    ERROR_CORRECT_Q,
)
from PIL import Image

from .certificates_layout import (
    QR_DARK,
    QR_ERROR_CORRECTION,
    QR_LIGHT,
    QR_QUIET_ZONE_MODULES,
)
from .errors import CodeRenderFailure

logger = logging.getLogger("eventcerts.codes")

_ERROR_LEVELS = {
    "L": ERROR_CORRECT_L,
    "M": ERROR_CORRECT_M,
    "Q": ERROR_CORRECT_Q,
    "H": ERROR_CORRECT_H,
}


def build_verification_payload(base_url: str, event_id: int, name: str) -> str:
    """Canonical verification URL for ``(event_id, name)``.

    Only the event id and participant name go into the payload so the code
    stays valid for the artifact's lifetime.
    """
    base = (base_url or "").rstrip("/")
    query = urlencode({"event": str(event_id), "name": name}, quote_via=quote)
    return f"{base}/verify?{query}"


def parse_verification_payload(payload: str) -> tuple[int, str]:
    """Inverse of :func:`build_verification_payload`."""
    parts = urlsplit((payload or "").strip())
    if not parts.path.rstrip("/").endswith("/verify") and parts.path != "verify":
        raise ValueError(f"Not a verification URL: {payload!r}")
    params = parse_qs(parts.query, keep_blank_values=True)
    event_values = params.get("event") or []
    name_values = params.get("name") or []
    if len(event_values) != 1 or len(name_values) != 1:
        raise ValueError(f"Verification URL needs exactly one event and name: {payload!r}")
    try:
        event_id = int(event_values[0])
    except ValueError:
        raise ValueError(f"Invalid event id in verification URL: {event_values[0]!r}") from None
    name = name_values[0].strip()
    if not name:
        raise ValueError("Verification URL has an empty name")
    return event_id, name


def render_code_layer(
    payload: str,
    size_px: int,
    *,
    error_correction: str = QR_ERROR_CORRECTION,
    quiet_zone: int = QR_QUIET_ZONE_MODULES,
    dark: str = QR_DARK,
    light: str = QR_LIGHT,
) -> Image.Image:
    """Render ``payload`` as a square QR image ``size_px`` wide.

    Every module is a whole number of pixels; leftover pixels become extra
    light margin. A code with more modules than ``size_px`` is returned at
    one pixel per module, larger than requested.
    """
    if size_px <= 0:
        raise ValueError(f"QR size must be positive, got {size_px}")
    level = _ERROR_LEVELS.get((error_correction or "").upper())
    if level is None:
        raise ValueError(f"Unknown QR error correction level {error_correction!r}")
    qr = qrcode.QRCode(error_correction=level, border=max(0, int(quiet_zone)))
    qr.add_data(payload)
    qr.make(fit=True)
    modules = qr.modules_count + 2 * qr.border
    qr.box_size = max(1, size_px // modules)
    code = qr.make_image(fill_color=dark, back_color=light).convert("RGB")
    if modules > size_px:
        logger.warning(
            "[CERT-QR] %s modules do not fit %spx; layer grown to %spx",
            modules,
            size_px,
            code.width,
        )
        return code
    if code.width == size_px:
        return code
    image = Image.new("RGB", (size_px, size_px), light)
    offset = (size_px - code.width) // 2
    image.paste(code, (offset, offset))
    return image


def render_code_layer_with_retry(payload: str, size_px: int, *, attempts: int = 2, **options) -> Image.Image:
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return render_code_layer(payload, size_px, **options)
        except Exception as exc:
            last_error = exc
            logger.warning(
                "[CERT-QR-RETRY] attempt=%s/%s size=%s error=%s",
                attempt,
                attempts,
                size_px,
                exc,
            )
    raise CodeRenderFailure(
        f"QR code could not be rendered after {attempts} attempts: {last_error}"
    ) from last_error
