"""Create the renewal delivery ledger with its one-row-per-milestone guard."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "renewal_delivery_records",
        sa.Column("record_id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), nullable=False, autoincrement=True),
        sa.Column("policy_id", sa.String(length=128), nullable=False),
        sa.Column("policy_number", sa.String(length=128), nullable=False, server_default=""),
        sa.Column("milestone_id", sa.String(length=32), nullable=False),
        sa.Column("recipient", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("provider_message_id", sa.String(length=128), nullable=True),
        sa.Column("error_code", sa.String(length=128), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("record_id"),
        sa.UniqueConstraint("policy_id", "milestone_id", name="uq_renewal_delivery_policy_milestone"),
    )
    op.create_index("ix_renewal_delivery_records_policy_id", "renewal_delivery_records", ["policy_id"], unique=False)
    op.create_index("ix_renewal_delivery_records_status", "renewal_delivery_records", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_renewal_delivery_records_status", table_name="renewal_delivery_records")
    op.drop_index("ix_renewal_delivery_records_policy_id", table_name="renewal_delivery_records")
    op.drop_table("renewal_delivery_records")
