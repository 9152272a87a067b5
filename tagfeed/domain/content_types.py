"""
Registre des types de contenu.

Associe un nom de type (déclaré par un tag) à la capacité de requête du modèle
de contenu externe, au lieu d'un accès dynamique par attribut.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod

from tagfeed.domain.entities import ContentPage
from tagfeed.domain.errors import UnknownContentType


class ContentModel(ABC):
    """Capacité de requête exposée par le modèle de contenu.

    Contrat d'ordre: `updated_at` décroissant puis `id` décroissant, stable
    d'une page à l'autre tant que les données ne changent pas. `total_count`
    compte toute l'appartenance au tag, indépendamment de la pagination.
    """

    @abstractmethod
    def find_content_items(
        self, content_type: str, tag_name: str, offset: int, limit: int
    ) -> ContentPage:
        raise NotImplementedError


class ContentTypeRegistry:
    """Table nom de type -> ContentModel."""

    def __init__(self) -> None:
        self._models: dict[str, ContentModel] = {}
        self._lock = threading.Lock()

    def register(self, content_type: str, model: ContentModel) -> None:
        with self._lock:
            self._models[content_type] = model

    def get(self, content_type: str) -> ContentModel:
        model = self._models.get(content_type)
        if model is None:
            raise UnknownContentType(content_type)
        return model

    def types(self) -> list[str]:
        return sorted(self._models)
