"""Create leads table for verified company contacts.

The company name index backs duplicate-cache rebuilds, which list every lead
ordered by capture time.
"""

from __future__ import annotations

import logging

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "5b2e9c417d0a"
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger(__name__)


def upgrade() -> None:
    op.create_table(
        "leads",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("address", sa.String(length=512), nullable=False),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("website", sa.String(length=512), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("confidence", sa.Integer(), nullable=False),
        sa.Column("search_condition", sa.String(length=255), nullable=False),
        sa.Column("region", sa.String(length=32), nullable=True),
        sa.Column(
            "source_urls",
            sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql"),
            nullable=False,
        ),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_leads"),
    )
    op.create_index("ix_leads_company_name", "leads", ["company_name"], unique=False)
    op.create_index("ix_leads_captured_at", "leads", ["captured_at"], unique=False)
    logger.info("Created leads table.")


def downgrade() -> None:
    op.drop_index("ix_leads_captured_at", table_name="leads")
    op.drop_index("ix_leads_company_name", table_name="leads")
    op.drop_table("leads")
