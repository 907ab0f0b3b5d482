from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..models import (
    CERT_STATUS_FAILED,
    CERT_STATUS_GENERATED,
    CERT_STATUS_SENT,
    GeneratedCertificate,
)
from .errors import InvalidStatusTransition, MetadataPersistFailure
from .submissions import ParticipantSubmission

logger = logging.getLogger("eventcerts.records")

_ALLOWED_TRANSITIONS = {
    CERT_STATUS_GENERATED: {CERT_STATUS_SENT, CERT_STATUS_FAILED},
    CERT_STATUS_SENT: set(),
    CERT_STATUS_FAILED: set(),
}


class SqlRecordWriter:
    """Writes one ``generated_certificates`` row per stored artifact."""

    def __init__(self, session):
        self.session = session

    def insert(
        self, event_id: int, submission: ParticipantSubmission, file_path: str
    ) -> GeneratedCertificate:
        row = GeneratedCertificate(
            event_id=event_id,
            participant_name=submission.name,
            email=submission.email,
            mobile=submission.mobile,
            department=submission.department,
            year=submission.year,
            enrollment=submission.enrollment,
            file_path=file_path,
            status=CERT_STATUS_GENERATED,
        )
        try:
            self.session.add(row)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                "[CERT-RECORD-FAIL] event=%s path=%s error=%s", event_id, file_path, exc
            )
            raise MetadataPersistFailure(
                f"Certificate row for {file_path} could not be saved: {exc}",
                file_path=file_path,
            ) from exc
        return row


def find_for_verification(session, event_id: int, name: str) -> list[GeneratedCertificate]:
    return (
        session.query(GeneratedCertificate)
        .filter(GeneratedCertificate.event_id == event_id)
        .filter(GeneratedCertificate.participant_name == name)
        .order_by(GeneratedCertificate.id)
        .all()
    )


def record_delivery_result(
    session, certificate_id: int, status: str, error: str | None = None
) -> GeneratedCertificate:
    """Set the delivery outcome; only ``generated`` rows may change."""
    row = session.get(GeneratedCertificate, certificate_id)
    if row is None:
        raise LookupError(f"Certificate {certificate_id} not found")
    allowed = _ALLOWED_TRANSITIONS.get(row.status, set())
    if status not in allowed:
        raise InvalidStatusTransition(
            f"Certificate {certificate_id} cannot move from {row.status!r} to {status!r}"
        )
    row.status = status
    row.error = (error or None) if status == CERT_STATUS_FAILED else None
    session.commit()
    logger.info("[CERT-DELIVERY] id=%s status=%s", certificate_id, status)
    return row
