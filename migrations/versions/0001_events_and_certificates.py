"""create events and generated_certificates tables"""

from alembic import op
import sqlalchemy as sa

revision = "0001_events_and_certificates"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("date", sa.String(length=64)),
        sa.Column("venue", sa.String(length=255)),
        sa.Column("organized_by", sa.String(length=255)),
        sa.Column("template_path", sa.String(length=512), nullable=False),
        sa.Column("name_box_x", sa.Float(), nullable=False, server_default="0"),
        sa.Column("name_box_y", sa.Float(), nullable=False, server_default="0"),
        sa.Column("name_box_w", sa.Float(), nullable=False, server_default="0"),
        sa.Column("name_box_h", sa.Float(), nullable=False, server_default="0"),
        sa.Column("name_font_family", sa.String(length=100), server_default="Poppins"),
        sa.Column("name_font_size", sa.Integer(), server_default="48"),
        sa.Column("name_font_color", sa.String(length=32), server_default="#0ea5e9"),
        sa.Column("name_align", sa.String(length=10), server_default="center"),
        sa.Column("qr_x", sa.Float(), nullable=False, server_default="0"),
        sa.Column("qr_y", sa.Float(), nullable=False, server_default="0"),
        sa.Column("qr_size", sa.Float(), nullable=False, server_default="0.06"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_table(
        "generated_certificates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "event_id",
            sa.Integer(),
            sa.ForeignKey("events.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("participant_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("mobile", sa.String(length=64), server_default=""),
        sa.Column("department", sa.String(length=255), server_default=""),
        sa.Column("year", sa.String(length=32), server_default=""),
        sa.Column("enrollment", sa.String(length=64), server_default=""),
        sa.Column("file_path", sa.String(length=512), nullable=False, unique=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="generated"),
        sa.Column("error", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_generated_certificates_event_name",
        "generated_certificates",
        ["event_id", "participant_name"],
    )


def downgrade() -> None:
    op.drop_index("ix_generated_certificates_event_name", table_name="generated_certificates")
    op.drop_table("generated_certificates")
    op.drop_table("events")
