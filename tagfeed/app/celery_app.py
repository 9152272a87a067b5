"""
Module: celery_app.

But: Initialiser l'instance Celery de l'application et charger la config runtime.

Les tâches de `tagfeed.tasks` exécutent les cycles de diffusion hors du
processus API (DISPATCH_MODE=celery) et le balayage périodique des baux (beat).
"""

from celery import Celery

from tagfeed.core.settings import get_settings

_settings = get_settings()

celery_app = Celery(
    "tagfeed",
    broker=_settings.CELERY_BROKER_URL,
    backend=_settings.CELERY_RESULT_BACKEND,
    include=["tagfeed.tasks.lease_tasks"],
)
# Load configuration from module (retries, timeouts, acks, beat)
celery_app.config_from_object("tagfeed.app.celeryconfig")
celery_app.conf.task_routes = {"tagfeed.tasks.*": {"queue": "default"}}
celery_app.conf.beat_schedule = {
    "sweep-expired-leases": {
        "task": "tagfeed.tasks.sweep_expired_leases",
        "schedule": _settings.LEASE_SWEEP_INTERVAL_S,
    },
}

__all__ = ["celery_app"]
