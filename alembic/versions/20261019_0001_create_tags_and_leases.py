# mypy: ignore-errors
"""
Migration Alembic: tables tags, leases, content_items et content_item_tags.

Les horodatages sont stockés en millisecondes epoch (BigInteger).
"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Crée les tables du suivi des tags et des abonnements."""
    op.create_table(
        "tags",
        sa.Column("name", sa.String(length=255), primary_key=True),
        sa.Column("content_type", sa.String(length=64), nullable=False),
        sa.Column("last_modified_ms", sa.BigInteger(), nullable=False),
    )
    op.create_table(
        "leases",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tag", sa.String(length=255), nullable=False),
        sa.Column("endpoint", sa.String(length=2048), nullable=False),
        sa.Column("created_at_ms", sa.BigInteger(), nullable=False),
        sa.Column("expires_at_ms", sa.BigInteger(), nullable=False),
        sa.Column("failure_count", sa.Integer(), nullable=False),
        sa.UniqueConstraint("tag", "endpoint", name="uq_lease_tag_endpoint"),
    )
    op.create_index("ix_leases_expires_at_ms", "leases", ["expires_at_ms"])
    op.create_table(
        "content_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("updated_at_ms", sa.BigInteger(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
    )
    op.create_index("ix_content_items_order", "content_items", ["type", "updated_at_ms", "id"])
    op.create_table(
        "content_item_tags",
        sa.Column(
            "item_id",
            sa.Integer(),
            sa.ForeignKey("content_items.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("tag", sa.String(length=255), primary_key=True),
    )
    op.create_index("ix_content_item_tags_tag", "content_item_tags", ["tag"])


def downgrade() -> None:
    """Supprime les tables créées par `upgrade`."""
    op.drop_index("ix_content_item_tags_tag", table_name="content_item_tags")
    op.drop_table("content_item_tags")
    op.drop_index("ix_content_items_order", table_name="content_items")
    op.drop_table("content_items")
    op.drop_index("ix_leases_expires_at_ms", table_name="leases")
    op.drop_table("leases")
    op.drop_table("tags")
