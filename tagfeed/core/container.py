"""
Conteneur d'injection de dépendances et configuration application.

Instancie les composants centraux (settings, dépôts, index des tags, magasin de
baux, dispatcher, flux de mutations) et expose `get_container()`, singleton
utilisé par l'API et les tâches Celery.
"""

from __future__ import annotations

from datetime import datetime

import structlog

from tagfeed.core.settings import Settings, get_settings
from tagfeed.domain.change_feed import ChangeFeed
from tagfeed.domain.content_types import ContentTypeRegistry
from tagfeed.domain.dispatcher import NotificationDispatcher
from tagfeed.domain.freshness import FreshnessOracle
from tagfeed.domain.lease_store import LeaseStore, LeaseSweeper
from tagfeed.domain.query_executor import QueryExecutor
from tagfeed.domain.tag_index import TagIndex, TagRepo
from tagfeed.infra.ops.idempotency import IdempotencyStore, redis_client
from tagfeed.infra.pingback_client import PingbackClient
from tagfeed.infra.repositories import InMemoryContentModel, InMemoryLeaseStore, InMemoryTagRepo

log = structlog.get_logger(__name__)


class Container:
    """Assemble les composants selon la configuration.

    - `DATABASE_URL` défini: tags, baux et modèle de contenu en SQL.
    - sinon: implémentations mémoire (dev/tests).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        pingback_client: PingbackClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        s = self.settings
        self.registry = ContentTypeRegistry()
        self.engine = None
        tag_repo: TagRepo
        if s.DATABASE_URL:
            from tagfeed.infra.repo.content_repo import SqlContentModel  # noqa: PLC0415
            from tagfeed.infra.repo.db import get_engine, get_session_factory  # noqa: PLC0415
            from tagfeed.infra.repo.lease_repo import SqlLeaseStore  # noqa: PLC0415
            from tagfeed.infra.repo.models import Base  # noqa: PLC0415
            from tagfeed.infra.repo.tag_repo import SqlTagRepo  # noqa: PLC0415

            self.engine = get_engine(s.DATABASE_URL)
            if s.DB_AUTO_CREATE:
                Base.metadata.create_all(self.engine)
            factory = get_session_factory(self.engine)
            tag_repo = SqlTagRepo(factory)
            self.leases: LeaseStore = SqlLeaseStore(factory, s.LEASE_FAILURE_THRESHOLD)
            self.content_model = SqlContentModel(factory)
            self.storage_backend = "sql"
        else:
            tag_repo = InMemoryTagRepo()
            self.leases = InMemoryLeaseStore(s.LEASE_FAILURE_THRESHOLD)
            self.content_model = InMemoryContentModel()
            self.storage_backend = "memory"

        self.tags = TagIndex(tag_repo)
        self.queries = QueryExecutor(
            self.tags,
            self.registry,
            default_page_size=s.DEFAULT_PAGE_SIZE,
            max_page_size=s.MAX_PAGE_SIZE,
        )
        self.freshness = FreshnessOracle(self.tags)
        self.pingback_client = pingback_client or PingbackClient(timeout_s=s.DELIVERY_TIMEOUT_S)
        self.dispatcher = NotificationDispatcher(
            self.leases,
            self.pingback_client,
            max_in_flight=s.DISPATCH_MAX_IN_FLIGHT,
            retries=s.DELIVERY_RETRIES,
        )
        self.sweeper = LeaseSweeper(self.leases, s.LEASE_SWEEP_INTERVAL_S)
        self.idempotency = IdempotencyStore(
            ttl_seconds=s.MUTATION_IDEMPOTENCY_TTL_S, client=redis_client(s.REDIS_URL)
        )
        self.change_feed = ChangeFeed(
            self.tags,
            self._trigger_dispatch,
            self.idempotency,
            ttl_seconds=s.MUTATION_IDEMPOTENCY_TTL_S,
        )
        self.content_model.add_listener(self.change_feed.content_mutated)
        for content_type in s.CONTENT_TYPES:
            self.register_content_type(content_type)
        log.info("container_ready", storage=self.storage_backend, dispatch=s.DISPATCH_MODE)

    def register_content_type(self, content_type: str) -> None:
        """Déclare un type de contenu servi par le modèle de contenu configuré."""
        self.registry.register(content_type, self.content_model)

    def _trigger_dispatch(self, tag: str, changed_at: datetime) -> None:
        if self.settings.DISPATCH_MODE == "celery":
            from tagfeed.tasks.lease_tasks import dispatch_tag_change  # noqa: PLC0415

            dispatch_tag_change.delay(tag, changed_at.isoformat())
            return
        self.dispatcher.notify(tag, changed_at)

    def close(self) -> None:
        self.sweeper.stop()
        self.dispatcher.close()
        if self.engine is not None:
            self.engine.dispose()


_container: Container | None = None


def get_container() -> Container:
    """Retourne le conteneur du processus (construit au premier appel)."""
    global _container
    if _container is None:
        _container = Container()
    return _container


def set_container(container: Container | None) -> None:
    """Remplace le conteneur du processus (tests, workers)."""
    global _container
    _container = container
