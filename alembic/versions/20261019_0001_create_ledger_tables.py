"""create properties, transactions and share_visits

Revision ID: 20261019_0001
Revises: 
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "properties",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("share_token", sa.String(), nullable=True),
        sa.Column("share_token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("share_token", name="properties_share_token_key"),
        sa.CheckConstraint(
            "(share_token IS NULL) = (share_token_expires_at IS NULL)",
            name="properties_share_token_pair_check",
        ),
    )
    op.create_index("ix_properties_user_id", "properties", ["user_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "property_id",
            sa.Uuid(),
            sa.ForeignKey("properties.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(length=100), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("type", sa.String(length=7), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount > 0", name="transactions_amount_positive_check"),
        sa.CheckConstraint("type in ('income','expense')", name="transactions_type_check"),
    )
    op.create_index("ix_transactions_property_id", "transactions", ["property_id"])

    op.create_table(
        "share_visits",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "property_id",
            sa.Uuid(),
            sa.ForeignKey("properties.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("visited_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_share_visits_property_id_visited_at", "share_visits", ["property_id", "visited_at"])


def downgrade() -> None:
    op.drop_index("ix_share_visits_property_id_visited_at", table_name="share_visits")
    op.drop_table("share_visits")
    op.drop_index("ix_transactions_property_id", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_properties_user_id", table_name="properties")
    op.drop_table("properties")
