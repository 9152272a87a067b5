"""
Index des tags: résolution nom -> Tag et suivi de la dernière modification.

Le dépôt sous-jacent (mémoire ou SQL) garantit l'atomicité de `advance`
(max(courant, nouveau)), ce qui empêche `last_modified` de régresser quand des
mutations concurrentes arrivent dans le désordre.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

import structlog

from tagfeed.domain.entities import Tag
from tagfeed.domain.errors import InvalidArgument, TagNotFound
from tagfeed.domain.timeutil import truncate_ms, utcnow

log = structlog.get_logger(__name__)


class TagRepo(ABC):
    """Interface minimale d'un dépôt de tags."""

    @abstractmethod
    def get(self, name: str) -> Tag | None:
        """Retourne le tag ou None."""
        raise NotImplementedError

    @abstractmethod
    def insert_if_absent(self, tag: Tag) -> Tag:
        """Insère le tag s'il n'existe pas; retourne la version stockée."""
        raise NotImplementedError

    @abstractmethod
    def advance(self, name: str, timestamp: datetime) -> Tag | None:
        """Porte `last_modified` à max(courant, timestamp); None si absent."""
        raise NotImplementedError


class TagIndex:
    """Résout les tags et enregistre leurs mutations."""

    def __init__(self, repo: TagRepo) -> None:
        self._repo = repo

    def resolve(self, name: str) -> Tag:
        """Retourne le tag `name`.

        Raises:
            TagNotFound: si aucun tag ne porte ce nom.
        """
        tag = self._repo.get(name)
        if tag is None:
            raise TagNotFound(name)
        return tag

    def touch(self, name: str, timestamp: datetime) -> Tag:
        """Enregistre qu'un contenu du tag a changé à `timestamp`.

        Un seul appel par mutation logique. Un horodatage antérieur à l'actuel
        est absorbé (pas de régression).

        Raises:
            TagNotFound: si aucun tag ne porte ce nom.
        """
        tag = self._repo.advance(name, truncate_ms(timestamp))
        if tag is None:
            raise TagNotFound(name)
        log.debug("tag_touched", tag=name, last_modified=tag.last_modified.isoformat())
        return tag

    def ensure(self, name: str, content_type: str, timestamp: datetime | None = None) -> Tag:
        """Crée implicitement le tag lors de sa première association à un contenu."""
        if not name:
            raise InvalidArgument("Tag name must not be empty")
        ts = truncate_ms(timestamp) if timestamp is not None else utcnow()
        tag = self._repo.insert_if_absent(
            Tag(name=name, content_type=content_type, last_modified=ts)
        )
        if tag.content_type != content_type:
            log.warning(
                "tag_content_type_mismatch",
                tag=name,
                declared=tag.content_type,
                received=content_type,
            )
        return tag
