"""
Oracle de fraîcheur: un tag a-t-il changé depuis une date donnée ?

Répond sans exécuter de requête de contenu, en comparant strictement
`last_modified` du tag à la date `since` fournie.
"""

from __future__ import annotations

from datetime import datetime

from tagfeed.domain.entities import Freshness
from tagfeed.domain.errors import InvalidArgument
from tagfeed.domain.tag_index import TagIndex
from tagfeed.domain.timeutil import ensure_utc, from_millis


def parse_since(raw: str | datetime | None) -> datetime:
    """Analyse une date `since`.

    Formats acceptés: date ISO (`2013-04-01`), datetime ISO (avec ou sans
    décalage, `Z` accepté, naïf => UTC) ou millisecondes epoch.

    Raises:
        InvalidArgument: valeur absente ou mal formée.
    """
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    text = (raw or "").strip() if isinstance(raw, str) else ""
    if not text:
        raise InvalidArgument("since must be a timestamp")
    if text.isdigit():
        return from_millis(int(text))
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as err:
        raise InvalidArgument(f"since is not a valid timestamp: {text}") from err
    return ensure_utc(parsed)


class FreshnessOracle:
    """Vérification légère de mise à jour d'un tag."""

    def __init__(self, tags: TagIndex) -> None:
        self._tags = tags

    def is_updated_since(self, tag_name: str, since: str | datetime) -> Freshness:
        """Retourne "updated" si last_modified > since, "same" sinon.

        Raises:
            TagNotFound: tag inconnu.
            InvalidArgument: `since` mal formé.
        """
        tag = self._tags.resolve(tag_name)
        threshold = parse_since(since)
        return "updated" if tag.last_modified > threshold else "same"
