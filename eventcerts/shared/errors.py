from __future__ import annotations


class CertificateError(RuntimeError):
    """Base class for failures raised while generating a certificate."""


class InvalidSubmission(CertificateError):
    """Raised when a participant submission is rejected at the boundary."""


class InvalidEventConfig(CertificateError):
    """Raised when an event layout cannot produce a drawable name box."""


class TemplateUnreadable(CertificateError):
    """Raised when the template cannot be located or decoded."""


class CodeRenderFailure(CertificateError):
    """Raised when the verification code could not be rendered after a retry."""


class CompositingFailure(CertificateError):
    """Raised when layers could not be merged into the output raster."""


class GenerationTimeout(CertificateError):
    """Raised when a generation runs past its deadline."""


class MetadataPersistFailure(CertificateError):
    """Raised when the metadata row fails after the file is already durable.

    ``file_path`` is the stored reference; pass it back to
    :func:`eventcerts.shared.certificates.record_artifact` to retry.
    """

    def __init__(self, message: str, *, file_path: str):
        super().__init__(message)
        self.file_path = file_path


class InvalidStatusTransition(CertificateError):
    """Raised when a delivery status change is not allowed."""
