"""
Entités du domaine: tags, contenus, baux d'abonnement et pingbacks.

Objets valeur immuables (dataclasses figées). Les horodatages sont des
`datetime` UTC à la milliseconde (voir `tagfeed.domain.timeutil`).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

DeliveryOutcome = Literal["success", "failure", "timeout"]
Freshness = Literal["updated", "same"]


@dataclass(frozen=True)
class Tag:
    """Regroupement nommé de contenus avec horodatage de dernière modification.

    Attributs
    - name: nom unique, sensible à la casse.
    - content_type: type de contenu déclaré (clé du registre de types).
    - last_modified: dernière mutation connue, jamais décroissante.
    """

    name: str
    content_type: str
    last_modified: datetime


@dataclass(frozen=True)
class ContentItem:
    """Contenu appartenant au modèle externe; le cœur ne fait que le lire."""

    id: int
    type: str
    tags: frozenset[str]
    updated_at: datetime
    data: dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Représentation sérialisable JSON renvoyée par l'API."""
        out: dict[str, Any] = dict(self.data)
        out.update(
            {
                "id": self.id,
                "type": self.type,
                "tags": sorted(self.tags),
                "updatedAt": self.updated_at.isoformat(),
            }
        )
        return out


def content_sort_key(item: ContentItem) -> tuple[datetime, int]:
    """Clé d'ordre naturel: plus récent d'abord, départage par id décroissant.

    À utiliser avec `reverse=True`.
    """
    return (item.updated_at, item.id)


@dataclass(frozen=True)
class PageQuery:
    """Requête paginée éphémère sur un tag (non persistée)."""

    tag_name: str
    offset: int
    limit: int
    content_type: str

    def where(self) -> dict[str, str]:
        return {"tags": self.tag_name}

    def to_dict(self) -> dict[str, Any]:
        return {"offset": self.offset, "limit": self.limit, "where": self.where()}


@dataclass(frozen=True)
class ContentPage:
    """Page de résultats et cardinalité totale du tag."""

    items: list[ContentItem]
    total_count: int

    def to_dict(self) -> dict[str, Any]:
        return {"items": [i.to_dict() for i in self.items], "count": self.total_count}


@dataclass(frozen=True)
class Lease:
    """Abonnement borné dans le temps d'un endpoint distant à un tag.

    Identité: couple (tag, endpoint). Un bail dont `expires_at <= now` est
    logiquement expiré, même si le balayage ne l'a pas encore supprimé.
    """

    tag: str
    endpoint: str
    created_at: datetime
    expires_at: datetime
    failure_count: int = 0

    @property
    def key(self) -> tuple[str, str]:
        return (self.tag, self.endpoint)

    def is_active(self, as_of: datetime) -> bool:
        return self.expires_at > as_of


@dataclass(frozen=True)
class FailureOutcome:
    """Résultat de `record_failure`."""

    still_active: bool
    failure_count: int


@dataclass(frozen=True)
class Pingback:
    """Notification de changement livrée aux abonnés d'un tag."""

    tag: str
    changed_at: datetime

    def to_payload(self) -> dict[str, str]:
        return {"tag": self.tag, "changedAt": self.changed_at.isoformat()}


@dataclass(frozen=True)
class DeliveryAttempt:
    """Tentative de livraison (éphémère) et son issue."""

    lease: Lease
    payload: Pingback
    outcome: DeliveryOutcome
    attempts: int
    still_active: bool


@dataclass
class DispatchReport:
    """Bilan d'un cycle de diffusion pour un tag."""

    tag: str
    changed_at: datetime
    attempts: list[DeliveryAttempt] = field(default_factory=list)
    coalesced: int = 0

    @property
    def delivered(self) -> int:
        return sum(1 for a in self.attempts if a.outcome == "success")

    @property
    def failed(self) -> int:
        return sum(1 for a in self.attempts if a.outcome != "success")

    @property
    def dropped(self) -> int:
        return sum(1 for a in self.attempts if not a.still_active)
