"""
Repositories en mémoire (dev/tests).

Ce module fournit les implémentations non persistantes des dépôts de tags, de
baux et du modèle de contenu. Chaque opération est atomique sous un verrou
court; aucun verrou n'est conservé au-delà d'un appel.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from tagfeed.domain.content_types import ContentModel
from tagfeed.domain.entities import (
    ContentItem,
    ContentPage,
    FailureOutcome,
    Lease,
    Tag,
    content_sort_key,
)
from tagfeed.domain.lease_store import LeaseStore
from tagfeed.domain.tag_index import TagRepo
from tagfeed.domain.timeutil import truncate_ms

MutationListener = Callable[[str, int, frozenset[str], datetime], Any]


class InMemoryTagRepo(TagRepo):
    """Dépôt de tags en mémoire, indexé par nom."""

    def __init__(self) -> None:
        self._db: dict[str, Tag] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> Tag | None:
        return self._db.get(name)

    def insert_if_absent(self, tag: Tag) -> Tag:
        with self._lock:
            return self._db.setdefault(tag.name, tag)

    def advance(self, name: str, timestamp: datetime) -> Tag | None:
        with self._lock:
            tag = self._db.get(name)
            if tag is None:
                return None
            if timestamp > tag.last_modified:
                tag = Tag(tag.name, tag.content_type, timestamp)
                self._db[name] = tag
            return tag


class InMemoryLeaseStore(LeaseStore):
    """Baux en mémoire: dict (tag, endpoint) -> Lease."""

    backend = "memory"

    def __init__(self, failure_threshold: int = 5) -> None:
        super().__init__(failure_threshold)
        self._db: dict[tuple[str, str], Lease] = {}
        self._lock = threading.Lock()

    def count(self) -> int:
        return len(self._db)

    def _upsert(self, lease: Lease) -> None:
        with self._lock:
            self._db[lease.key] = lease

    def _delete(self, tag: str, endpoint: str) -> bool:
        with self._lock:
            return self._db.pop((tag, endpoint), None) is not None

    def _get(self, tag: str, endpoint: str) -> Lease | None:
        return self._db.get((tag, endpoint))

    def _list_for_tag(self, tag: str, as_of: datetime) -> list[Lease]:
        with self._lock:
            return [lease for (t, _), lease in self._db.items() if t == tag]

    def _increment_failures(self, tag: str, endpoint: str, threshold: int) -> FailureOutcome:
        with self._lock:
            lease = self._db.get((tag, endpoint))
            if lease is None:
                return FailureOutcome(still_active=False, failure_count=0)
            count = lease.failure_count + 1
            if count >= threshold:
                del self._db[(tag, endpoint)]
                return FailureOutcome(still_active=False, failure_count=count)
            self._db[(tag, endpoint)] = Lease(
                lease.tag, lease.endpoint, lease.created_at, lease.expires_at, count
            )
            return FailureOutcome(still_active=True, failure_count=count)

    def _reset_failures(self, tag: str, endpoint: str) -> None:
        with self._lock:
            lease = self._db.get((tag, endpoint))
            if lease is not None and lease.failure_count:
                self._db[(tag, endpoint)] = Lease(
                    lease.tag, lease.endpoint, lease.created_at, lease.expires_at, 0
                )

    def _delete_expired(self, as_of: datetime) -> int:
        with self._lock:
            expired = [k for k, lease in self._db.items() if not lease.is_active(as_of)]
            for k in expired:
                del self._db[k]
            return len(expired)


class InMemoryContentModel(ContentModel):
    """Modèle de contenu en mémoire (démos/tests).

    `save` notifie les écouteurs de mutation (`content_mutated`).
    """

    def __init__(self) -> None:
        self._items: dict[int, ContentItem] = {}
        self._lock = threading.Lock()
        self._listeners: list[MutationListener] = []

    def add_listener(self, listener: MutationListener) -> None:
        self._listeners.append(listener)

    def save(self, item: ContentItem) -> ContentItem:
        item = ContentItem(
            item.id, item.type, frozenset(item.tags), truncate_ms(item.updated_at), item.data
        )
        with self._lock:
            previous = self._items.get(item.id)
            self._items[item.id] = item
        # Les tags retirés changent aussi
        tags = item.tags | (previous.tags if previous else frozenset())
        for listener in self._listeners:
            listener(item.type, item.id, tags, item.updated_at)
        return item

    def save_all(self, items: Iterable[ContentItem]) -> None:
        for item in items:
            self.save(item)

    def find_content_items(
        self, content_type: str, tag_name: str, offset: int, limit: int
    ) -> ContentPage:
        with self._lock:
            matching = [
                i for i in self._items.values() if i.type == content_type and tag_name in i.tags
            ]
        matching.sort(key=content_sort_key, reverse=True)
        return ContentPage(items=matching[offset : offset + limit], total_count=len(matching))
