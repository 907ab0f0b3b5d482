"""Certificate generation: layout, text fitting, QR code, compositing, storage.

Everything a generation needs is passed in through a :class:`GenerationContext`
so the pipeline never reaches for application globals.
"""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Mapping, NamedTuple, Optional, Protocol

from .certificates_layout import (
    ALIGN_INSET_EM,
    BATCH_WORKERS_DEFAULT,
    DEADLINE_SECONDS_DEFAULT,
    MAX_TEMPLATE_PIXELS_DEFAULT,
    MIN_FONT_PX,
    NAME_MARGIN_H,
    NAME_MARGIN_W,
    NAME_MIN_PADDING_PX,
    NAME_THRESHOLD_CHARS,
    QR_ERROR_CORRECTION,
    QR_MIN_PX,
    QR_QUIET_ZONE_MODULES,
    REFERENCE_HEIGHT_PX,
)
from .codes import build_verification_payload, render_code_layer_with_retry
from .compositor import composite_layers, decode_template, encode_png
from .errors import (
    CertificateError,
    CodeRenderFailure,
    CompositingFailure,
    GenerationTimeout,
    InvalidEventConfig,
    MetadataPersistFailure,
)
from .layout import place_square, resolve_box, resolve_code_box
from .records import SqlRecordWriter
from .storage import TEMPLATES_DIRNAME, FileArtifactSink, FileTemplateStore
from .submissions import EventConfig, ParticipantSubmission, parse_submission
from .text_fit import plan_name_layer, render_name_layer

logger = logging.getLogger("eventcerts.certificates")

_POLL_SECONDS = 0.25
_ABANDON_GRACE_SECONDS = 1.0


class TemplateAccessor(Protocol):
    def read_bytes(self, reference: str) -> bytes: ...


class ArtifactSink(Protocol):
    def write(self, event_id: int, data: bytes, extension: str = ".png") -> str: ...


class MetadataWriter(Protocol):
    def insert(self, event_id: int, submission: ParticipantSubmission, file_path: str): ...


@dataclass(frozen=True)
class GenerationSettings:
    verify_base_url: str
    font_dir: Optional[str] = None
    reference_height: float = REFERENCE_HEIGHT_PX
    threshold_chars: int = NAME_THRESHOLD_CHARS
    min_font_px: int = MIN_FONT_PX
    margin_w: float = NAME_MARGIN_W
    margin_h: float = NAME_MARGIN_H
    min_padding_px: int = NAME_MIN_PADDING_PX
    align_inset_em: float = ALIGN_INSET_EM
    qr_error_correction: str = QR_ERROR_CORRECTION
    qr_quiet_zone: int = QR_QUIET_ZONE_MODULES
    qr_min_px: int = QR_MIN_PX
    batch_workers: int = BATCH_WORKERS_DEFAULT
    deadline_seconds: float = DEADLINE_SECONDS_DEFAULT
    max_template_pixels: int = MAX_TEMPLATE_PIXELS_DEFAULT

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "GenerationSettings":
        return cls(
            verify_base_url=config.get("VERIFY_BASE_URL", ""),
            font_dir=config.get("CERT_FONT_DIR"),
            batch_workers=int(config.get("CERT_BATCH_WORKERS", BATCH_WORKERS_DEFAULT)),
            deadline_seconds=float(
                config.get("CERT_DEADLINE_SECONDS", DEADLINE_SECONDS_DEFAULT)
            ),
            max_template_pixels=int(
                config.get("CERT_MAX_TEMPLATE_PIXELS", MAX_TEMPLATE_PIXELS_DEFAULT)
            ),
        )


@dataclass(frozen=True)
class GenerationContext:
    templates: TemplateAccessor
    artifacts: ArtifactSink
    records: MetadataWriter
    settings: GenerationSettings


def build_context(config: Mapping[str, Any], session) -> GenerationContext:
    """Wire the file stores and SQL writer from an app config."""
    site_root = config.get("SITE_ROOT", "/srv")
    return GenerationContext(
        templates=FileTemplateStore(os.path.join(site_root, TEMPLATES_DIRNAME)),
        artifacts=FileArtifactSink(site_root),
        records=SqlRecordWriter(session),
        settings=GenerationSettings.from_config(config),
    )


class Deadline:
    def __init__(self, seconds: float | None):
        self.seconds = seconds
        self.expires_at = None if not seconds else time.monotonic() + seconds

    def remaining(self) -> float | None:
        if self.expires_at is None:
            return None
        return self.expires_at - time.monotonic()

    def check(self, stage: str) -> None:
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise GenerationTimeout(
                f"Generation exceeded {self.seconds}s deadline during {stage}"
            )


class ComposedCertificate(NamedTuple):
    png: bytes
    width: int
    height: int
    font_size: int
    payload: str


class StoredArtifact(NamedTuple):
    event_id: int
    submission: ParticipantSubmission
    file_path: str
    font_size: int


def compose_certificate(
    ctx: GenerationContext,
    event: EventConfig,
    submission: ParticipantSubmission,
    deadline: Deadline | None = None,
) -> ComposedCertificate:
    """Build the certificate PNG in memory. Nothing is written."""
    deadline = deadline or Deadline(None)
    settings = ctx.settings
    deadline.check("start")

    template = decode_template(
        ctx.templates.read_bytes(event.template_path),
        max_pixels=settings.max_template_pixels,
    )
    deadline.check("template decode")
    width, height = template.size

    name_box = resolve_box(event.name_box, width, height)
    if name_box.width <= 0 or name_box.height <= 0:
        raise InvalidEventConfig(
            f"Event {event.event_id} name box resolves to {name_box.width}x{name_box.height}px"
            f" on a {width}x{height} template"
        )
    code_box = resolve_code_box(event.code_box, width, height, min_px=settings.qr_min_px)

    plan = plan_name_layer(
        submission.name,
        name_box,
        event.font,
        height,
        reference_height=settings.reference_height,
        threshold_chars=settings.threshold_chars,
        floor_size=settings.min_font_px,
        margin_w=settings.margin_w,
        margin_h=settings.margin_h,
        min_padding=settings.min_padding_px,
        inset_em=settings.align_inset_em,
    )
    try:
        name_layer = render_name_layer(submission.name, plan, event.font, settings.font_dir)
    except (OSError, ValueError) as exc:
        raise CompositingFailure(f"Name layer could not be drawn: {exc}") from exc

    payload = build_verification_payload(
        settings.verify_base_url, event.event_id, submission.name
    )
    code_layer = render_code_layer_with_retry(
        payload,
        code_box.width,
        error_correction=settings.qr_error_correction,
        quiet_zone=settings.qr_quiet_zone,
    )
    # dense payloads may render larger than the box rather than lose modules
    if code_layer.width > min(width, height):
        raise CodeRenderFailure(
            f"QR code needs {code_layer.width}px, template is only {width}x{height}px"
        )
    code_left, code_top = place_square(
        code_box.left, code_box.top, code_layer.width, width, height
    )
    deadline.check("layer rendering")

    merged = composite_layers(
        template,
        name_layer,
        (plan.left, plan.top),
        code_layer,
        (code_left, code_top),
    )
    png = encode_png(merged)
    deadline.check("compositing")
    return ComposedCertificate(png, width, height, plan.font_size, payload)


def store_certificate(
    ctx: GenerationContext,
    event: EventConfig,
    submission: ParticipantSubmission,
    deadline: Deadline | None = None,
) -> StoredArtifact:
    """Compose and durably write the image. No metadata row is created."""
    deadline = deadline or Deadline(None)
    composed = compose_certificate(ctx, event, submission, deadline)
    deadline.check("artifact write")
    file_path = ctx.artifacts.write(event.event_id, composed.png)
    return StoredArtifact(event.event_id, submission, file_path, composed.font_size)


def record_artifact(ctx: GenerationContext, stored: StoredArtifact):
    """Insert the metadata row for an already-written artifact.

    Safe to call again with the same ``stored`` after a
    :class:`MetadataPersistFailure`.
    """
    return ctx.records.insert(stored.event_id, stored.submission, stored.file_path)


def generate_certificate(
    ctx: GenerationContext,
    event: EventConfig,
    submission: ParticipantSubmission,
):
    deadline = Deadline(ctx.settings.deadline_seconds)
    stored = store_certificate(ctx, event, submission, deadline)
    row = record_artifact(ctx, stored)
    logger.info(
        "[CERT] event=%s name_len=%s font_px=%s path=%s",
        event.event_id,
        len(submission.name),
        stored.font_size,
        stored.file_path,
    )
    return row


@dataclass
class BatchFailure:
    index: int
    name: str
    error: str
    file_path: Optional[str] = None


@dataclass
class BatchSummary:
    artifacts: list = field(default_factory=list)
    failures: list[BatchFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.artifacts)

    @property
    def failed(self) -> int:
        return len(self.failures)


def _row_name(row: Any) -> str:
    if isinstance(row, ParticipantSubmission):
        return row.name
    if isinstance(row, Mapping):
        return str(row.get("name") or "").strip()
    return ""


def generate_batch(
    ctx: GenerationContext,
    event: EventConfig,
    rows: Iterable[ParticipantSubmission | Mapping[str, Any]],
    *,
    workers: int | None = None,
    deadline_seconds: float | None = None,
) -> BatchSummary:
    """Generate certificates for many participants of one event.

    Image work runs on a bounded thread pool; rows are inserted on the
    calling thread. A failing item is recorded in the summary and the
    remaining items continue.
    """
    workers = max(1, workers or ctx.settings.batch_workers)
    if deadline_seconds is None:
        deadline_seconds = ctx.settings.deadline_seconds
    summary = BatchSummary()
    done_rows: dict[int, Any] = {}
    started: dict[int, float] = {}

    def _work(index: int, submission: ParticipantSubmission) -> StoredArtifact:
        started[index] = time.monotonic()
        return store_certificate(ctx, event, submission, Deadline(deadline_seconds))

    def _late_result(index: int, future: Future) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        logger.error(
            "[CERT-BATCH] event=%s item=%s finished after abandonment; orphaned path=%s",
            event.event_id,
            index,
            future.result().file_path,
        )

    pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="certgen")
    abandoned = False
    try:
        pending: dict[Future, tuple[int, ParticipantSubmission]] = {}
        for index, row in enumerate(rows):
            try:
                if isinstance(row, ParticipantSubmission):
                    row = asdict(row)
                submission = parse_submission(row)
            except CertificateError as exc:
                logger.warning("[CERT-BATCH] event=%s item=%s rejected: %s", event.event_id, index, exc)
                summary.failures.append(BatchFailure(index, _row_name(row), str(exc)))
                continue
            pending[pool.submit(_work, index, submission)] = (index, submission)

        while pending:
            done, _ = wait(list(pending), timeout=_POLL_SECONDS, return_when=FIRST_COMPLETED)
            for future in done:
                index, submission = pending.pop(future)
                try:
                    stored = future.result()
                except Exception as exc:
                    logger.exception(
                        "[CERT-FAIL] event=%s item=%s name_len=%s",
                        event.event_id,
                        index,
                        len(submission.name),
                    )
                    summary.failures.append(BatchFailure(index, submission.name, str(exc)))
                    continue
                try:
                    done_rows[index] = record_artifact(ctx, stored)
                except MetadataPersistFailure as exc:
                    summary.failures.append(
                        BatchFailure(index, submission.name, str(exc), exc.file_path)
                    )
            if not deadline_seconds:
                continue
            now = time.monotonic()
            for future in list(pending):
                index, submission = pending[future]
                began = started.get(index)
                if began is None or now - began < deadline_seconds + _ABANDON_GRACE_SECONDS:
                    continue
                pending.pop(future)
                abandoned = True
                future.add_done_callback(lambda f, i=index: _late_result(i, f))
                logger.error(
                    "[CERT-BATCH] event=%s item=%s abandoned after %ss",
                    event.event_id,
                    index,
                    deadline_seconds,
                )
                summary.failures.append(
                    BatchFailure(
                        index,
                        submission.name,
                        f"Generation exceeded {deadline_seconds}s deadline",
                    )
                )
    finally:
        pool.shutdown(wait=not abandoned)

    summary.artifacts = [done_rows[i] for i in sorted(done_rows)]
    summary.failures.sort(key=lambda failure: failure.index)
    logger.info(
        "[CERT-BATCH] event=%s succeeded=%s failed=%s",
        event.event_id,
        summary.succeeded,
        summary.failed,
    )
    return summary
