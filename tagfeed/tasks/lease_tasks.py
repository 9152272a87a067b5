"""
Tâches Celery du mécanisme de pingback.

- `dispatch_tag_change`: exécute un cycle de diffusion pour un tag modifié
  (dédupliqué sur (tag, changed_at) pour absorber les ré-livraisons du broker).
- `sweep_expired_leases`: purge périodique des baux expirés (beat).
"""

from __future__ import annotations

from tagfeed.app.celery_app import celery_app
from tagfeed.core.container import get_container
from tagfeed.domain.freshness import parse_since
from tagfeed.infra.ops.idempotency import idempotent_task, make_idem_key


def _idempotency():
    return get_container().idempotency


@celery_app.task(name="tagfeed.tasks.dispatch_tag_change")
@idempotent_task(
    _idempotency,
    lambda tag, changed_at: make_idem_key("dispatch", tag, changed_at),
    ttl_seconds=3600,
    on_duplicate_return={"status": "duplicate"},
)
def dispatch_tag_change(tag: str, changed_at: str) -> dict:
    report = get_container().dispatcher.dispatch(tag, parse_since(changed_at))
    return {
        "status": "ok",
        "tag": tag,
        "delivered": report.delivered,
        "failed": report.failed,
        "dropped": report.dropped,
        "coalesced": report.coalesced,
    }


@celery_app.task(name="tagfeed.tasks.sweep_expired_leases")
def sweep_expired_leases() -> int:
    """Supprime les baux expirés; retourne le nombre supprimé."""
    return get_container().leases.sweep()
