"""SQLAlchemy models for persistence layer (tags, leases, content items).

Horodatages stockés en millisecondes epoch (BigInteger) pour rester précis et
indépendants du support des fuseaux par le SGBD.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Classe de base pour tous les modèles SQLAlchemy."""

    metadata = MetaData()


class TagORM(Base):
    """Modèle ORM des tags."""

    __tablename__ = "tags"

    name = Column(String(255), primary_key=True)
    content_type = Column(String(64), nullable=False)
    last_modified_ms = Column(BigInteger, nullable=False)


class LeaseORM(Base):
    """Modèle ORM des baux d'abonnement; identité (tag, endpoint)."""

    __tablename__ = "leases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tag = Column(String(255), nullable=False)
    endpoint = Column(String(2048), nullable=False)
    created_at_ms = Column(BigInteger, nullable=False)
    expires_at_ms = Column(BigInteger, nullable=False)
    failure_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("tag", "endpoint", name="uq_lease_tag_endpoint"),
        Index("ix_leases_expires_at_ms", "expires_at_ms"),
    )


content_item_tags = Table(
    "content_item_tags",
    Base.metadata,
    Column(
        "item_id",
        Integer,
        ForeignKey("content_items.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("tag", String(255), primary_key=True),
    Index("ix_content_item_tags_tag", "tag"),
)


class ContentItemORM(Base):
    """Modèle ORM des contenus (implémentation de référence du modèle externe)."""

    __tablename__ = "content_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(64), nullable=False)
    updated_at_ms = Column(BigInteger, nullable=False)
    data = Column(JSON, nullable=False, default=dict)

    __table_args__ = (Index("ix_content_items_order", "type", "updated_at_ms", "id"),)
