"""
Application principale FastAPI.

Ce module assemble les composants de l'application : middlewares, routes,
métriques, gestion des erreurs et cycle de vie (balayage des baux, arrêt du
dispatcher).

Responsabilités du module:
- Initialiser le logging structuré
- Construire l'application FastAPI avec son titre/debug
- Ajouter les middlewares (request id, métriques)
- Monter les routers (santé, tags, évènements, métriques)
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from tagfeed.api.errors import install_error_handlers
from tagfeed.api.routes_events import router as events_router
from tagfeed.api.routes_health import router as health_router
from tagfeed.api.routes_tags import router as tags_router
from tagfeed.app.metrics import PrometheusMiddleware, metrics_router
from tagfeed.core.container import Container, get_container
from tagfeed.core.logging import setup_logging
from tagfeed.middlewares.request_id import RequestIDMiddleware


def create_app(container: Container | None = None) -> FastAPI:
    """
    Construit et retourne l'application FastAPI prête à l'usage.

    Étapes:
    - Configure le logging structuré (structlog)
    - Attache le conteneur (fourni, ou singleton du processus)
    - Démarre le balayeur de baux au lancement, arrête le dispatcher à l'arrêt
    - Publie les routes
    """
    c = container or get_container()
    setup_logging(c.settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if c.settings.LEASE_SWEEP_ENABLED:
            c.sweeper.start()
        try:
            yield
        finally:
            c.close()

    app = FastAPI(title=c.settings.APP_NAME, debug=c.settings.APP_DEBUG, lifespan=lifespan)
    app.state.container = c
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(PrometheusMiddleware)
    install_error_handlers(app)
    app.include_router(health_router)
    app.include_router(tags_router)
    app.include_router(events_router)
    app.include_router(metrics_router)
    return app


app = create_app()
