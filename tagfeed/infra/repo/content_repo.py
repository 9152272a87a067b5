# ============================================================
# Module : tagfeed/infra/repo/content_repo.py
# Objet  : Modèle de contenu SQL (référence) + évènement content_mutated.
# Notes  : l'évènement n'est émis qu'après commit (post_commit).
# ============================================================

from __future__ import annotations

from sqlalchemy import delete, func, insert, select
from sqlalchemy.orm import sessionmaker

from tagfeed.domain.content_types import ContentModel
from tagfeed.domain.entities import ContentItem, ContentPage
from tagfeed.domain.timeutil import from_millis, to_millis, truncate_ms
from tagfeed.infra.ops.post_commit import register_action_after_commit
from tagfeed.infra.repositories import MutationListener

from .db import session_scope
from .models import ContentItemORM, content_item_tags


class SqlContentModel(ContentModel):
    """Contenus et associations de tags en base.

    Ordre: `updated_at_ms DESC, id DESC`; le total est un COUNT sur toute
    l'appartenance au tag.
    """

    def __init__(self, factory: sessionmaker) -> None:
        self._factory = factory
        self._listeners: list[MutationListener] = []

    def add_listener(self, listener: MutationListener) -> None:
        self._listeners.append(listener)

    def save(self, item: ContentItem) -> ContentItem:
        """Insère ou met à jour un contenu et remplace ses tags.

        Les écouteurs reçoivent l'union des anciens et nouveaux tags, une fois
        la transaction validée.
        """
        updated_at = truncate_ms(item.updated_at)
        with session_scope(self._factory) as s:
            row = s.get(ContentItemORM, item.id) if item.id else None
            previous: set[str] = set()
            if row is None:
                row = ContentItemORM(type=item.type, data=dict(item.data))
                if item.id:
                    row.id = item.id
                s.add(row)
            else:
                current = select(content_item_tags.c.tag).where(
                    content_item_tags.c.item_id == row.id
                )
                previous = set(s.execute(current).scalars())
                row.type = item.type
                row.data = dict(item.data)
            row.updated_at_ms = to_millis(updated_at)
            s.flush()
            s.execute(delete(content_item_tags).where(content_item_tags.c.item_id == row.id))
            if item.tags:
                s.execute(
                    insert(content_item_tags),
                    [{"item_id": row.id, "tag": t} for t in sorted(item.tags)],
                )
            saved = ContentItem(row.id, item.type, frozenset(item.tags), updated_at, dict(item.data))
            changed = frozenset(item.tags) | frozenset(previous)
            for listener in self._listeners:
                register_action_after_commit(
                    s, listener, saved.type, saved.id, changed, saved.updated_at
                )
        return saved

    def find_content_items(
        self, content_type: str, tag_name: str, offset: int, limit: int
    ) -> ContentPage:
        member = (
            select(content_item_tags.c.item_id)
            .where(content_item_tags.c.tag == tag_name)
            .scalar_subquery()
        )
        base = select(ContentItemORM).where(
            ContentItemORM.type == content_type, ContentItemORM.id.in_(member)
        )
        with session_scope(self._factory) as s:
            total = s.execute(select(func.count()).select_from(base.subquery())).scalar_one()
            rows = list(
                s.execute(
                    base.order_by(ContentItemORM.updated_at_ms.desc(), ContentItemORM.id.desc())
                    .offset(offset)
                    .limit(limit)
                ).scalars()
            )
            ids = [r.id for r in rows]
            tags_by_item: dict[int, set[str]] = {i: set() for i in ids}
            if ids:
                for item_id, tag in s.execute(
                    select(content_item_tags.c.item_id, content_item_tags.c.tag).where(
                        content_item_tags.c.item_id.in_(ids)
                    )
                ):
                    tags_by_item[item_id].add(tag)
            items = [
                ContentItem(
                    id=r.id,
                    type=r.type,
                    tags=frozenset(tags_by_item[r.id]),
                    updated_at=from_millis(r.updated_at_ms),
                    data=dict(r.data or {}),
                )
                for r in rows
            ]
        return ContentPage(items=items, total_count=int(total))
