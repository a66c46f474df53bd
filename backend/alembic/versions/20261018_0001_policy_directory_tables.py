"""Create the client and policy tables read by the renewal scheduler."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "clients",
        sa.Column("id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), nullable=False, autoincrement=True),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("phone_number", sa.String(length=20), nullable=False),
        sa.Column("email", sa.String(length=200), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "policies",
        sa.Column("id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), nullable=False, autoincrement=True),
        sa.Column("policy_number", sa.String(length=100), nullable=False),
        sa.Column("policy_type", sa.String(length=100), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("premium", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("premium_frequency", sa.String(length=20), nullable=False, server_default="YEARLY"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="ACTIVE"),
        sa.Column("client_id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), nullable=False),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("policy_number", name="uq_policies_policy_number"),
    )
    op.create_index("ix_policies_expiry_date", "policies", ["expiry_date"], unique=False)
    op.create_index("ix_policies_client_id", "policies", ["client_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_policies_client_id", table_name="policies")
    op.drop_index("ix_policies_expiry_date", table_name="policies")
    op.drop_table("policies")
    op.drop_table("clients")
