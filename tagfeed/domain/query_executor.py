"""
Exécution des requêtes paginées de contenus par tag.

- `offset` doit être un entier >= 0 (sinon `InvalidArgument`).
- `limit` est borné dans [1, max_page_size] plutôt que rejeté.
- L'ordre est celui du modèle (récent d'abord, départage par id décroissant).
"""

from __future__ import annotations

from typing import Any

import structlog

from tagfeed.app.metrics import TAG_QUERIES
from tagfeed.domain.content_types import ContentTypeRegistry
from tagfeed.domain.entities import ContentPage, PageQuery, content_sort_key
from tagfeed.domain.errors import InvalidArgument
from tagfeed.domain.tag_index import TagIndex

log = structlog.get_logger(__name__)


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise InvalidArgument(f"{name} must be an integer")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError) as err:
        raise InvalidArgument(f"{name} must be an integer") from err


class QueryExecutor:
    """Récupère une page de contenus d'un tag et le total associé."""

    def __init__(
        self,
        tags: TagIndex,
        registry: ContentTypeRegistry,
        *,
        default_page_size: int = 10,
        max_page_size: int = 100,
    ) -> None:
        self._tags = tags
        self._registry = registry
        self.max_page_size = max(1, max_page_size)
        self.default_page_size = self.clamp_limit(default_page_size)

    def clamp_limit(self, limit: int) -> int:
        """Borne `limit` dans [1, max_page_size]."""
        return min(max(limit, 1), self.max_page_size)

    def build_query(self, tag_name: str, offset: Any = None, limit: Any = None) -> PageQuery:
        """Valide et normalise les paramètres de pagination.

        Raises:
            TagNotFound: si le tag n'existe pas.
            InvalidArgument: si offset/limit ne sont pas des entiers ou offset < 0.
        """
        tag = self._tags.resolve(tag_name)
        off = 0 if offset is None else _as_int(offset, "offset")
        if off < 0:
            raise InvalidArgument("offset must be >= 0")
        lim = self.default_page_size if limit is None else self.clamp_limit(_as_int(limit, "limit"))
        return PageQuery(tag_name=tag.name, offset=off, limit=lim, content_type=tag.content_type)

    def query(
        self, tag_name: str, offset: Any = None, limit: Any = None
    ) -> tuple[PageQuery, ContentPage]:
        """Retourne la requête normalisée et la page de résultats."""
        q = self.build_query(tag_name, offset, limit)
        model = self._registry.get(q.content_type)
        page = model.find_content_items(q.content_type, q.tag_name, q.offset, q.limit)
        items = sorted(page.items, key=content_sort_key, reverse=True)[: q.limit]
        TAG_QUERIES.labels(q.content_type).inc()
        log.debug(
            "tag_query",
            tag=q.tag_name,
            offset=q.offset,
            limit=q.limit,
            returned=len(items),
            total=page.total_count,
        )
        return q, ContentPage(items=items, total_count=page.total_count)
