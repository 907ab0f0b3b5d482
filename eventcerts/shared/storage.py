from __future__ import annotations

import os
import shutil
import tempfile
import time
import uuid

from PIL import Image, UnidentifiedImageError

from .errors import TemplateUnreadable

CERTIFICATES_DIRNAME = "certificates"
TEMPLATES_DIRNAME = "templates"


def ensure_dir(path: str) -> None:
    """Create directory if missing (mkdir -p equivalent)."""
    os.makedirs(path, exist_ok=True)


def write_atomic(path: str, data, mode: str = "wb") -> None:
    """Write data to a temporary file then atomically rename to target path."""
    dir_path = os.path.dirname(path)
    ensure_dir(dir_path)
    fd, tmp_path = tempfile.mkstemp(dir=dir_path)
    try:
        with os.fdopen(fd, mode) as f:
            f.write(data)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def collision_free_filename(extension: str = ".png") -> str:
    """``<epoch-ms>-<uuid4>`` so concurrent writers never share a name."""
    if extension and not extension.startswith("."):
        extension = f".{extension}"
    return f"{time.time_ns() // 1_000_000}-{uuid.uuid4().hex}{extension.lower()}"


def _safe_path(root: str, candidate: str | None) -> str | None:
    raw = (candidate or "").strip()
    if not raw:
        return None
    root_real = os.path.realpath(root)
    resolved = os.path.realpath(os.path.join(root_real, raw.lstrip("/\\")))
    if resolved == root_real or resolved.startswith(f"{root_real}{os.sep}"):
        return resolved
    return None


class FileTemplateStore:
    """Template images kept under ``<site_root>/templates``."""

    def __init__(self, root: str):
        self.root = root

    def resolve(self, reference: str) -> str:
        ref = (reference or "").strip().replace("\\", "/")
        # references saved by the upload flow look like /uploads/templates/x.png
        marker = f"{TEMPLATES_DIRNAME}/"
        if marker in ref:
            ref = ref.split(marker, 1)[1]
        path = _safe_path(self.root, ref)
        if not path:
            raise TemplateUnreadable(f"Template reference {reference!r} is outside {self.root}")
        return path

    def read_bytes(self, reference: str) -> bytes:
        path = self.resolve(reference)
        try:
            with open(path, "rb") as handle:
                return handle.read()
        except OSError as exc:
            raise TemplateUnreadable(f"Template {reference!r} could not be read: {exc}") from exc

    def probe(self, reference: str) -> tuple[int, int]:
        path = self.resolve(reference)
        try:
            with Image.open(path) as image:
                return image.size
        except (OSError, UnidentifiedImageError) as exc:
            raise TemplateUnreadable(f"Template {reference!r} could not be probed: {exc}") from exc

    def import_file(self, source_path: str) -> str:
        """Copy ``source_path`` into the store and return its reference."""
        extension = os.path.splitext(source_path)[1] or ".png"
        filename = collision_free_filename(extension)
        ensure_dir(self.root)
        shutil.copyfile(source_path, os.path.join(self.root, filename))
        return filename


class FileArtifactSink:
    """Certificate images under ``<site_root>/certificates/<event_id>/``."""

    def __init__(self, site_root: str):
        self.site_root = site_root

    @property
    def root(self) -> str:
        return os.path.join(self.site_root, CERTIFICATES_DIRNAME)

    def write(self, event_id: int, data: bytes, extension: str = ".png") -> str:
        rel_path = os.path.join(
            CERTIFICATES_DIRNAME, str(event_id), collision_free_filename(extension)
        )
        full_path = self.path_for(rel_path)
        write_atomic(full_path, data)
        os.chmod(full_path, 0o644)
        return rel_path

    def path_for(self, rel_path: str) -> str:
        path = _safe_path(self.site_root, rel_path)
        if not path:
            raise ValueError(f"Artifact path {rel_path!r} is outside {self.site_root}")
        return path

    def exists(self, rel_path: str) -> bool:
        return os.path.isfile(self.path_for(rel_path))
