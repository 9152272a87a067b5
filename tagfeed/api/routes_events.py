# ============================================================
# Module : tagfeed/api/routes_events.py
# Objet  : Endpoint interne /internal/content/mutations.
# Notes  : point d'entrée HTTP de l'évènement content_mutated.
# ============================================================
"""Réception des mutations de contenu publiées par le modèle externe."""

from __future__ import annotations

from fastapi import APIRouter

from tagfeed.api.deps import container_dep
from tagfeed.api.schemas import ContentMutationRequest, ContentMutationResponse
from tagfeed.core.container import Container

router = APIRouter(prefix="/internal/content", tags=["events"])


@router.post("/mutations", response_model=ContentMutationResponse)
def content_mutated(
    payload: ContentMutationRequest, container: Container = container_dep
) -> ContentMutationResponse:
    """Touche les tags de la mutation et déclenche la diffusion des pingbacks.

    La diffusion est asynchrone: la réponse ne dépend pas des abonnés.
    """
    touched = container.change_feed.content_mutated(
        payload.type, payload.id, payload.tags, payload.timestamp
    )
    return ContentMutationResponse(touched=[t.name for t in touched])
