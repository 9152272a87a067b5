"""
Magasin des baux d'abonnement (propriétaire exclusif des enregistrements Lease).

La validation et les règles métier vivent dans `LeaseStore`; les sous-classes
(`tagfeed.infra.repositories`, `tagfeed.infra.repo.lease_repo`) fournissent un stockage atomique par opération.
Aucune autre composante ne modifie un bail sans passer par cette API.

Règles
------
- `subscribe` est idempotent sur (tag, endpoint): il remplace le bail existant.
- `active_leases_for` exclut les baux expirés même sans balayage préalable.
- `record_failure` supprime le bail au seuil d'échecs consécutifs.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from urllib.parse import urlsplit

import structlog

from tagfeed.app.metrics import LEASE_EVICTIONS, LEASE_SUBSCRIPTIONS
from tagfeed.domain.entities import FailureOutcome, Lease
from tagfeed.domain.errors import InvalidArgument, InvalidLease
from tagfeed.domain.timeutil import truncate_ms, utcnow

log = structlog.get_logger(__name__)


def validate_endpoint(endpoint: str | None) -> str:
    """Vérifie qu'un endpoint est une URL http(s) absolue."""
    value = (endpoint or "").strip()
    parts = urlsplit(value)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidArgument("endpoint must be an absolute http(s) URL")
    return value


def validate_duration(duration_ms: object) -> int:
    """Vérifie qu'une durée de bail est un entier strictement positif."""
    if isinstance(duration_ms, bool) or not isinstance(duration_ms, int) or duration_ms <= 0:
        raise InvalidLease("lease duration must be a positive integer (milliseconds)")
    return duration_ms


class LeaseStore(ABC):
    """Règles du cycle de vie des baux; stockage délégué aux sous-classes."""

    backend = "abstract"

    def __init__(self, failure_threshold: int = 5) -> None:
        self.failure_threshold = max(1, failure_threshold)

    # --- API publique ---

    def subscribe(
        self, tag: str, endpoint: str, duration_ms: int, now: datetime | None = None
    ) -> Lease:
        """Crée ou remplace le bail (tag, endpoint).

        Raises:
            InvalidLease: durée absente ou non positive.
            InvalidArgument: endpoint invalide.
        """
        duration = validate_duration(duration_ms)
        url = validate_endpoint(endpoint)
        created = truncate_ms(now) if now is not None else utcnow()
        lease = Lease(
            tag=tag,
            endpoint=url,
            created_at=created,
            expires_at=created + timedelta(milliseconds=duration),
        )
        self._upsert(lease)
        LEASE_SUBSCRIPTIONS.inc()
        log.info("lease_subscribed", tag=tag, endpoint=url, expires_at=lease.expires_at.isoformat())
        return lease

    def unsubscribe(self, tag: str, endpoint: str) -> bool:
        """Supprime le bail s'il existe; False (sans erreur) sinon."""
        endpoint = (endpoint or "").strip()
        removed = self._delete(tag, endpoint)
        if removed:
            LEASE_EVICTIONS.labels("unsubscribed").inc()
            log.info("lease_unsubscribed", tag=tag, endpoint=endpoint)
        return removed

    def get(self, tag: str, endpoint: str) -> Lease | None:
        return self._get(tag, endpoint)

    def active_leases_for(self, tag: str, as_of: datetime | None = None) -> list[Lease]:
        """Baux du tag dont l'expiration est strictement postérieure à `as_of`."""
        ref = as_of if as_of is not None else utcnow()
        return [lease for lease in self._list_for_tag(tag, ref) if lease.is_active(ref)]

    def record_failure(self, lease: Lease) -> FailureOutcome:
        """Incrémente le compteur d'échecs; supprime le bail au seuil."""
        outcome = self._increment_failures(lease.tag, lease.endpoint, self.failure_threshold)
        if not outcome.still_active:
            LEASE_EVICTIONS.labels("failures").inc()
            log.warning(
                "lease_evicted",
                tag=lease.tag,
                endpoint=lease.endpoint,
                failures=outcome.failure_count,
            )
        return outcome

    def record_success(self, lease: Lease) -> None:
        """Remet à zéro le compteur d'échecs."""
        self._reset_failures(lease.tag, lease.endpoint)

    def sweep(self, as_of: datetime | None = None) -> int:
        """Supprime les baux expirés; retourne le nombre supprimé."""
        ref = as_of if as_of is not None else utcnow()
        removed = self._delete_expired(ref)
        if removed:
            LEASE_EVICTIONS.labels("expired").inc(removed)
            log.info("lease_sweep", removed=removed)
        return removed

    @abstractmethod
    def count(self) -> int:
        """Nombre de baux stockés (actifs ou non encore balayés)."""
        raise NotImplementedError

    # --- Stockage (opérations atomiques) ---

    @abstractmethod
    def _upsert(self, lease: Lease) -> None:
        raise NotImplementedError

    @abstractmethod
    def _delete(self, tag: str, endpoint: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def _get(self, tag: str, endpoint: str) -> Lease | None:
        raise NotImplementedError

    @abstractmethod
    def _list_for_tag(self, tag: str, as_of: datetime) -> list[Lease]:
        raise NotImplementedError

    @abstractmethod
    def _increment_failures(self, tag: str, endpoint: str, threshold: int) -> FailureOutcome:
        raise NotImplementedError

    @abstractmethod
    def _reset_failures(self, tag: str, endpoint: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def _delete_expired(self, as_of: datetime) -> int:
        raise NotImplementedError


class LeaseSweeper:
    """Thread de fond qui balaie périodiquement les baux expirés."""

    def __init__(self, store: LeaseStore, interval_s: float = 60.0) -> None:
        self._store = store
        self._interval = max(0.01, interval_s)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="lease-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_once(self) -> int:
        return self._store.sweep()

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self.run_once()
            except Exception:
                # Le balayage reprendra au prochain intervalle
                log.exception("lease_sweep_failed")
