# ============================================================
# Tests : tests/test_change_feed.py
# Objet  : Consommation de content_mutated (touch + déclenchement).
# ============================================================
"""Tests du flux de mutations de contenu."""

from __future__ import annotations

from datetime import timedelta

import pytest

from tagfeed.domain.change_feed import ChangeFeed
from tagfeed.domain.errors import StorageFailure
from tagfeed.domain.tag_index import TagIndex
from tagfeed.infra.ops.idempotency import IdempotencyStore
from tagfeed.infra.repositories import InMemoryTagRepo
from tests.conftest import T0


class FlakyTagRepo(InMemoryTagRepo):
    """Dépôt dont le premier `advance` échoue."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_next = True

    def advance(self, name, timestamp):
        if self.fail_next:
            self.fail_next = False
            raise StorageFailure("storage error: OperationalError")
        return super().advance(name, timestamp)


@pytest.fixture
def triggered() -> list:
    return []


def _feed(repo, triggered) -> tuple[ChangeFeed, TagIndex]:
    tags = TagIndex(repo)
    feed = ChangeFeed(tags, lambda tag, ts: triggered.append((tag, ts)), IdempotencyStore())
    return feed, tags


def test_mutation_creates_touches_and_triggers(triggered) -> None:
    feed, tags = _feed(InMemoryTagRepo(), triggered)
    ts = T0 + timedelta(microseconds=1500)
    touched = feed.content_mutated("Content", 7, ["popular", "news", ""], ts)
    assert [t.name for t in touched] == ["news", "popular"]
    expected = T0 + timedelta(milliseconds=1)
    assert tags.resolve("popular").last_modified == expected
    assert tags.resolve("popular").content_type == "Content"
    assert triggered == [("news", expected), ("popular", expected)]


def test_replayed_event_is_ignored(triggered) -> None:
    feed, _ = _feed(InMemoryTagRepo(), triggered)
    feed.content_mutated("Content", 7, ["popular"], T0)
    assert feed.content_mutated("Content", 7, ["popular"], T0) == []
    assert len(triggered) == 1
    # Nouvelle mutation du même contenu: traitée
    feed.content_mutated("Content", 7, ["popular"], T0 + timedelta(seconds=1))
    assert len(triggered) == 2


def test_trigger_errors_do_not_propagate() -> None:
    def boom(tag, ts):
        raise RuntimeError("broker down")

    feed = ChangeFeed(TagIndex(InMemoryTagRepo()), boom, IdempotencyStore())
    touched = feed.content_mutated("Content", 1, ["popular"], T0)
    assert [t.name for t in touched] == ["popular"]


def test_storage_failure_releases_key_for_replay(triggered) -> None:
    feed, tags = _feed(FlakyTagRepo(), triggered)
    with pytest.raises(StorageFailure):
        feed.content_mutated("Content", 1, ["popular"], T0 + timedelta(seconds=1))
    assert triggered == []
    touched = feed.content_mutated("Content", 1, ["popular"], T0 + timedelta(seconds=1))
    assert [t.name for t in touched] == ["popular"]
    assert tags.resolve("popular").last_modified == T0 + timedelta(seconds=1)


def test_late_mutation_never_moves_changed_at_backwards(triggered) -> None:
    """Une mutation plus ancienne déclenche avec le dernier horodatage connu du tag."""
    feed, tags = _feed(InMemoryTagRepo(), triggered)
    later = T0 + timedelta(seconds=10)
    feed.content_mutated("Content", 1, ["popular"], later)
    feed.content_mutated("Content", 2, ["popular"], T0)
    assert tags.resolve("popular").last_modified == later
    assert triggered == [("popular", later), ("popular", later)]
