from __future__ import annotations

from sqlalchemy.orm import validates

from .app import db

CERT_STATUS_GENERATED = "generated"
CERT_STATUS_SENT = "sent"
CERT_STATUS_FAILED = "failed"
CERT_STATUSES = (CERT_STATUS_GENERATED, CERT_STATUS_SENT, CERT_STATUS_FAILED)


class Event(db.Model):
    __tablename__ = "events"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    date = db.Column(db.String(64))
    venue = db.Column(db.String(255))
    organized_by = db.Column(db.String(255))
    template_path = db.Column(db.String(512), nullable=False)
    name_box_x = db.Column(db.Float, nullable=False, default=0.0)
    name_box_y = db.Column(db.Float, nullable=False, default=0.0)
    name_box_w = db.Column(db.Float, nullable=False, default=0.0)
    name_box_h = db.Column(db.Float, nullable=False, default=0.0)
    name_font_family = db.Column(db.String(100), default="Poppins")
    name_font_size = db.Column(db.Integer, default=48)
    name_font_color = db.Column(db.String(32), default="#0ea5e9")
    name_align = db.Column(db.String(10), default="center")
    qr_x = db.Column(db.Float, nullable=False, default=0.0)
    qr_y = db.Column(db.Float, nullable=False, default=0.0)
    qr_size = db.Column(db.Float, nullable=False, default=0.06)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    certificates = db.relationship(
        "GeneratedCertificate",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class GeneratedCertificate(db.Model):
    __tablename__ = "generated_certificates"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    # copied, not referenced: one participant may submit more than once
    participant_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    mobile = db.Column(db.String(64), default="")
    department = db.Column(db.String(255), default="")
    year = db.Column(db.String(32), default="")
    enrollment = db.Column(db.String(64), default="")
    file_path = db.Column(db.String(512), nullable=False, unique=True)
    status = db.Column(
        db.String(16), nullable=False, default=CERT_STATUS_GENERATED
    )
    error = db.Column(db.Text)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.Index("ix_generated_certificates_event_name", "event_id", "participant_name"),
    )

    event = db.relationship("Event", back_populates="certificates")

    @validates("status")
    def check_status(self, key, value):
        if value not in CERT_STATUSES:
            raise ValueError(f"Unknown certificate status {value!r}")
        return value
