"""
Tests de l'exécution des requêtes paginées par tag.

Couvre la pagination (offset/limit), le total, l'ordre récent d'abord avec
départage par id et la validation des paramètres.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from tagfeed.domain.content_types import ContentTypeRegistry
from tagfeed.domain.errors import InvalidArgument, TagNotFound, UnknownContentType
from tagfeed.domain.query_executor import QueryExecutor
from tagfeed.domain.tag_index import TagIndex
from tagfeed.infra.repositories import InMemoryContentModel, InMemoryTagRepo
from tests.conftest import T0
from tests.fakes import item

TOTAL_POPULAR = 25


@pytest.fixture
def setup():
    tags = TagIndex(InMemoryTagRepo())
    model = InMemoryContentModel()
    registry = ContentTypeRegistry()
    registry.register("Content", model)
    tags.ensure("popular", "Content", T0)
    for i in range(1, TOTAL_POPULAR + 1):
        model.save(item(i, T0 + timedelta(seconds=i), "popular"))
    executor = QueryExecutor(tags, registry, default_page_size=10, max_page_size=100)
    return executor, tags, model, registry


def test_last_page_of_popular(setup) -> None:
    """25 contenus, offset 20 / limit 20: 5 éléments (les plus anciens), total 25."""
    executor, *_ = setup
    query, page = executor.query("popular", "20", "20")
    assert query.offset == 20 and query.limit == 20
    assert query.to_dict() == {"offset": 20, "limit": 20, "where": {"tags": "popular"}}
    assert page.total_count == TOTAL_POPULAR
    assert [i.id for i in page.items] == [5, 4, 3, 2, 1]


def test_first_page_uses_default_limit(setup) -> None:
    executor, *_ = setup
    query, page = executor.query("popular")
    assert query.offset == 0 and query.limit == 10
    assert [i.id for i in page.items] == list(range(25, 15, -1))


def test_offset_beyond_total_returns_empty_page(setup) -> None:
    executor, *_ = setup
    _, page = executor.query("popular", 100, 10)
    assert page.items == []
    assert page.total_count == TOTAL_POPULAR


@pytest.mark.parametrize(("raw", "expected"), [(0, 1), (-3, 1), (1, 1), (100, 100), (1000, 100)])
def test_limit_is_clamped(setup, raw, expected) -> None:
    executor, *_ = setup
    query, page = executor.query("popular", 0, raw)
    assert query.limit == expected
    assert len(page.items) == min(expected, TOTAL_POPULAR)


@pytest.mark.parametrize("offset", ["-1", -5, "abc", "1.5", True])
def test_invalid_offset(setup, offset) -> None:
    executor, *_ = setup
    with pytest.raises(InvalidArgument):
        executor.query("popular", offset, 10)


def test_invalid_limit(setup) -> None:
    executor, *_ = setup
    with pytest.raises(InvalidArgument):
        executor.query("popular", 0, "many")


def test_unknown_tag_checked_before_arguments(setup) -> None:
    """Le tag est résolu avant la validation de la pagination."""
    executor, *_ = setup
    with pytest.raises(TagNotFound):
        executor.query("missing", "-1", 10)


def test_tie_break_by_id_descending(setup) -> None:
    """Deux contenus au même horodatage: id décroissant."""
    executor, tags, model, _ = setup
    tags.ensure("twins", "Content", T0)
    model.save(item(100, T0, "twins"))
    model.save(item(101, T0, "twins"))
    model.save(item(99, T0 - timedelta(days=1), "twins"))
    _, page = executor.query("twins")
    assert [i.id for i in page.items] == [101, 100, 99]


def test_other_content_types_are_excluded(setup) -> None:
    executor, tags, model, _ = setup
    model.save(item(500, T0 + timedelta(days=1), "popular", type_="Page"))
    _, page = executor.query("popular", 0, 1)
    assert page.total_count == TOTAL_POPULAR
    assert page.items[0].id == TOTAL_POPULAR


def test_tag_without_items(setup) -> None:
    executor, tags, *_ = setup
    tags.ensure("lonely", "Content", T0)
    _, page = executor.query("lonely")
    assert page.items == [] and page.total_count == 0


def test_unregistered_content_type(setup) -> None:
    executor, tags, *_ = setup
    tags.ensure("pages", "Page", T0)
    with pytest.raises(UnknownContentType):
        executor.query("pages")


def test_page_serialization(setup) -> None:
    executor, *_ = setup
    _, page = executor.query("popular", 0, 1)
    out = page.to_dict()
    assert out["count"] == TOTAL_POPULAR
    first = out["items"][0]
    assert first["id"] == TOTAL_POPULAR
    assert first["tags"] == ["popular"]
    assert first["title"] == "item 25"
    assert first["updatedAt"] == (T0 + timedelta(seconds=25)).isoformat()
