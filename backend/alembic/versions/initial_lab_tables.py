"""initial_lab_tables

Revision ID: initial_lab_tables
Revises:
Create Date: 2026-10-17

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "initial_lab_tables"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create catalog, patient, registration, autocomplete and session tables."""
    op.create_table(
        "blood_test",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("test_name", sa.String(255), nullable=False, unique=True),
        sa.Column("parameter", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb"), comment="Parameter definitions with range tables"),
        sa.Column("sub_heading", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb"), comment="Subheading groups, optionally totalling 100"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_blood_test_test_name", "blood_test", ["test_name"])

    op.create_table(
        "patientdetail",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("patient_id", sa.String(64), nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("age", sa.Integer, nullable=False),
        sa.Column("day_type", sa.String(16), nullable=False, server_default="year"),
        sa.Column("gender", sa.String(32), nullable=False),
    )
    op.create_index("ix_patientdetail_patient_id", "patientdetail", ["patient_id"])

    op.create_table(
        "registration",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("patient_id", sa.Integer, sa.ForeignKey("patientdetail.id", ondelete="CASCADE"), nullable=False),
        sa.Column("bloodtest_data", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb"), comment="Booked tests"),
        sa.Column("bloodtest_detail", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb"), comment="Saved results keyed by normalized test name"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_registration_patient_id", "registration", ["patient_id"])

    op.create_table(
        "autocomplete_values",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("value", sa.Text, nullable=False),
    )

    op.create_table(
        "session",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("token", sa.Text, nullable=False, unique=True),
        sa.Column("email", sa.Text, nullable=False, server_default=""),
        sa.Column("expiresAt", sa.DateTime(timezone=True), nullable=False),
        sa.Column("createdAt", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_session_token", "session", ["token"])


def downgrade() -> None:
    """Drop lab tables."""
    op.drop_table("session")
    op.drop_table("autocomplete_values")
    op.drop_table("registration")
    op.drop_table("patientdetail")
    op.drop_table("blood_test")
