# ============================================================
# Module : tagfeed/infra/repo/tag_repo.py
# Objet  : Accès SQL aux tags (résolution, création implicite, touch).
# ============================================================

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from tagfeed.domain.entities import Tag
from tagfeed.domain.errors import StorageFailure
from tagfeed.domain.tag_index import TagRepo
from tagfeed.domain.timeutil import from_millis, to_millis

from .db import session_scope
from .models import TagORM


def _to_tag(row: TagORM) -> Tag:
    return Tag(
        name=row.name,
        content_type=row.content_type,
        last_modified=from_millis(row.last_modified_ms),
    )


class SqlTagRepo(TagRepo):
    """Dépôt de tags SQL; `advance` est un UPDATE conditionnel (max atomique)."""

    def __init__(self, factory: sessionmaker) -> None:
        self._factory = factory

    def get(self, name: str) -> Tag | None:
        with session_scope(self._factory) as s:
            row = s.get(TagORM, name)
            return _to_tag(row) if row is not None else None

    def insert_if_absent(self, tag: Tag) -> Tag:
        try:
            with session_scope(self._factory) as s:
                row = s.get(TagORM, tag.name)
                if row is not None:
                    return _to_tag(row)
                s.add(
                    TagORM(
                        name=tag.name,
                        content_type=tag.content_type,
                        last_modified_ms=to_millis(tag.last_modified),
                    )
                )
            return tag
        except StorageFailure as err:
            # Création concurrente: l'autre insertion a gagné
            if not isinstance(err.__cause__, IntegrityError):
                raise
        existing = self.get(tag.name)
        if existing is None:
            raise StorageFailure(f"tag {tag.name!r} vanished after concurrent insert")
        return existing

    def advance(self, name: str, timestamp: datetime) -> Tag | None:
        ms = to_millis(timestamp)
        with session_scope(self._factory) as s:
            s.execute(
                update(TagORM)
                .where(TagORM.name == name, TagORM.last_modified_ms < ms)
                .values(last_modified_ms=ms)
            )
            row = s.get(TagORM, name)
            return _to_tag(row) if row is not None else None
