"""
Routes de l'API des tags: contenus paginés, ping de fraîcheur et abonnements.

Exemples:
    GET /do/api/tags/popular/get?offset=20&limit=20
    GET /do/api/tags/popular/ping?since=2013-04-01
    GET /do/api/tags/popular/subscribe?lease=60000&url=http://subscriber.example/ping

Toutes les réponses sont des enveloppes `{status: ...}`; les erreurs portent
`status: "error"` et un `message`.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter

from tagfeed.api.deps import container_dep, tag_dep
from tagfeed.api.errors import error_response
from tagfeed.core.container import Container
from tagfeed.core.http_constants import HTTP_BAD_REQUEST
from tagfeed.domain.entities import Tag

router = APIRouter(prefix="/do/api/tags", tags=["tags"])
log = structlog.get_logger(__name__)

MISSING_SINCE = 'Please specify a date with "since" querystring parameter'
MISSING_URL = 'Please specify a URL with "url" querystring parameter'
MISSING_LEASE = 'Please specify a lease with "lease" querystring parameter'


def _parse_lease(raw: str | None) -> int | None:
    """Durée de bail en millisecondes; None si absente, non entière ou <= 0."""
    try:
        value = int((raw or "").strip())
    except ValueError:
        return None
    return value if value > 0 else None


@router.get("/{name}/get")
def get_items(
    offset: str | None = None,
    limit: str | None = None,
    tag: Tag = tag_dep,
    container: Container = container_dep,
):
    """
    Retourne les contenus du tag, paginés.

    Paramètres:
    - offset: rang du premier élément (>= 0, défaut 0).
    - limit: taille de page, bornée dans [1, MAX_PAGE_SIZE] (défaut DEFAULT_PAGE_SIZE).

    Retour: `{status, query: {offset, limit, where: {tags}}, results: {items, count}}`.
    """
    query, page = container.queries.query(tag.name, offset, limit)
    return {"status": "success", "query": query.to_dict(), "results": page.to_dict()}


@router.get("/{name}/ping")
def ping(
    since: str | None = None,
    tag: Tag = tag_dep,
    container: Container = container_dep,
):
    """Indique si le tag a changé depuis `since` (`updated` ou `same`)."""
    if not since:
        return error_response(HTTP_BAD_REQUEST, MISSING_SINCE)
    return {"status": container.freshness.is_updated_since(tag.name, since)}


@router.api_route("/{name}/subscribe", methods=["GET", "POST"])
def subscribe(
    url: str | None = None,
    lease: str | None = None,
    tag: Tag = tag_dep,
    container: Container = container_dep,
):
    """
    Abonne `url` aux pingbacks du tag pendant `lease` millisecondes.

    Un nouvel appel pour le même couple (tag, url) renouvelle le bail.
    """
    if not url:
        return error_response(HTTP_BAD_REQUEST, MISSING_URL)
    duration = _parse_lease(lease)
    if duration is None:
        return error_response(HTTP_BAD_REQUEST, MISSING_LEASE)
    created = container.leases.subscribe(tag.name, url, duration)
    return {
        "status": "success",
        "message": "Subscribed to tag",
        "expiresAt": created.expires_at.isoformat(),
    }


@router.api_route("/{name}/unsubscribe", methods=["GET", "POST"])
def unsubscribe(
    url: str | None = None,
    tag: Tag = tag_dep,
    container: Container = container_dep,
):
    """Résilie l'abonnement de `url`; sans effet s'il n'existe pas."""
    if not url:
        return error_response(HTTP_BAD_REQUEST, MISSING_URL)
    removed = container.leases.unsubscribe(tag.name, url)
    log.debug("unsubscribe", tag=tag.name, endpoint=url, removed=removed)
    return {"status": "success", "message": "Unsubscribed from tag"}
