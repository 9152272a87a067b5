"""
Endpoint de santé pour vérifier la disponibilité de l'API et du stockage.

Expose `/health` pour signaler l'état général, le backend des baux et leur nombre.
"""

from fastapi import APIRouter

from tagfeed.api.deps import container_dep
from tagfeed.core.container import Container
from tagfeed.domain.errors import StorageFailure

router = APIRouter(tags=["health"])


@router.get("/health")
def health(container: Container = container_dep):
    """Vérifie la disponibilité de l'API et le backend de stockage."""
    try:
        leases = container.leases.count()
        status = "ok"
    except StorageFailure:
        leases = None
        status = "degraded"
    return {
        "status": status,
        "storage": container.storage_backend,
        "leases": leases,
        "dispatch_in_flight": container.dispatcher.in_flight(),
        "sweeper": container.sweeper.running,
    }
