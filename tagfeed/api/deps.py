"""Dépendances partagées pour les routes de l'API.

But du module
-------------
- Exposer le conteneur de l'application aux endpoints (via `app.state`).
- Résoudre le tag du chemin avant chaque action (`Tag not found` sinon).
"""

from fastapi import Depends, Request

from tagfeed.core.container import Container
from tagfeed.domain.entities import Tag


def get_app_container(request: Request) -> Container:
    """Retourne le conteneur attaché à l'application."""
    return request.app.state.container


container_dep = Depends(get_app_container)


def find_tag(name: str, container: Container = container_dep) -> Tag:
    """Résout le tag `name` du chemin; lève `TagNotFound` s'il n'existe pas."""
    return container.tags.resolve(name)


tag_dep = Depends(find_tag)
