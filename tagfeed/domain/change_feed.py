"""
Consommateur de l'évènement `content_mutated` du modèle de contenu.

Pour chaque mutation logique (dédupliquée par clé d'idempotence), chaque tag
concerné est créé si besoin, touché une seule fois, puis un cycle de diffusion
est déclenché. Les problèmes de livraison ne remontent jamais à l'appelant.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime

import structlog

from tagfeed.domain.entities import Tag
from tagfeed.domain.tag_index import TagIndex
from tagfeed.domain.timeutil import to_millis, truncate_ms
from tagfeed.infra.ops.idempotency import IdempotencyStore, make_idem_key

log = structlog.get_logger(__name__)

# (tag, changed_at) -> None; déclenche un cycle de diffusion (inline ou Celery)
DispatchTrigger = Callable[[str, datetime], object]


class ChangeFeed:
    """Relie les mutations de contenu à l'index des tags et au dispatcher."""

    def __init__(
        self,
        tags: TagIndex,
        trigger: DispatchTrigger,
        idempotency: IdempotencyStore,
        ttl_seconds: int = 86400,
    ) -> None:
        self._tags = tags
        self._trigger = trigger
        self._idem = idempotency
        self._ttl = ttl_seconds

    def content_mutated(
        self,
        content_type: str,
        item_id: int | str,
        tags: Iterable[str],
        timestamp: datetime,
    ) -> list[Tag]:
        """Applique une mutation de contenu; retourne les tags touchés.

        Un évènement rejoué (même type, id, horodatage) est ignoré.
        """
        ts = truncate_ms(timestamp)
        names = sorted({t for t in tags if t})
        key = make_idem_key("content", content_type, item_id, to_millis(ts))
        if not self._idem.acquire(key, ttl=self._ttl):
            log.info("content_mutation_duplicate", content_type=content_type, item_id=item_id)
            return []
        touched: list[Tag] = []
        try:
            for name in names:
                self._tags.ensure(name, content_type, ts)
                touched.append(self._tags.touch(name, ts))
        except Exception:
            # Mutation non appliquée: l'évènement pourra être rejoué
            self._idem.release(key)
            raise
        for tag in touched:
            # last_modified et non ts: une mutation en retard ne fait pas reculer changedAt
            try:
                self._trigger(tag.name, tag.last_modified)
            except Exception:
                log.exception("dispatch_trigger_failed", tag=tag.name)
        log.info(
            "content_mutated",
            content_type=content_type,
            item_id=item_id,
            tags=[t.name for t in touched],
        )
        return touched
