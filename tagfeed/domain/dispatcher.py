# ============================================================
# Module : tagfeed/domain/dispatcher.py
# Objet  : Diffusion des pingbacks aux abonnés d'un tag modifié.
# Invariants :
#  - Au plus une livraison en vol par bail (tag, endpoint).
#  - Aucun verrou du LeaseStore n'est tenu pendant l'appel réseau.
#  - Les échecs de livraison ne remontent jamais à l'auteur de la mutation.
# ============================================================
"""Dispatcher de notifications (cycle collecte -> diffusion -> issue).

Un cycle est déclenché par le `touch` d'un tag:

1. Collecte des baux actifs (`active_leases_for(tag, now)`).
2. Diffusion concurrente bornée (pool de `max_in_flight` threads).
3. Issue: succès -> `record_success`; échec/timeout (après `retries` nouvel(s)
   essai(s) immédiat(s)) -> `record_failure`, qui peut supprimer le bail.

Sérialisation par bail: si une livraison est déjà en vol pour un abonné, le
nouveau cycle ne lance pas d'appel concurrent; il dépose le changement le plus
récent, que le worker en vol livre à la suite si le bail est toujours actif.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Protocol

import structlog

from tagfeed.app.metrics import DISPATCH_COALESCED, DISPATCH_IN_FLIGHT, PINGBACK_DELIVERIES
from tagfeed.domain.entities import DeliveryAttempt, DispatchReport, Lease, Pingback
from tagfeed.domain.errors import DeliveryFailure
from tagfeed.domain.lease_store import LeaseStore
from tagfeed.domain.timeutil import truncate_ms, utcnow

log = structlog.get_logger(__name__)

LeaseKey = tuple[str, str]


class PingbackTransport(Protocol):
    def deliver(self, endpoint: str, pingback: Pingback) -> None: ...


class NotificationDispatcher:
    """Diffuse les changements de tag aux baux actifs."""

    def __init__(
        self,
        leases: LeaseStore,
        transport: PingbackTransport,
        *,
        max_in_flight: int = 16,
        retries: int = 1,
        cycle_workers: int = 2,
    ) -> None:
        self._leases = leases
        self._transport = transport
        self._retries = max(0, retries)
        self._pool = ThreadPoolExecutor(
            max_workers=max(1, max_in_flight), thread_name_prefix="pingback"
        )
        # Pool distinct: un cycle attend ses livraisons, il ne doit pas occuper leurs threads
        self._cycles = ThreadPoolExecutor(
            max_workers=max(1, cycle_workers), thread_name_prefix="dispatch-cycle"
        )
        self._lock = threading.Lock()
        self._in_flight: dict[LeaseKey, Pingback] = {}
        self._pending: dict[LeaseKey, Pingback] = {}

    # --- API publique ---

    def dispatch(
        self, tag: str, changed_at: datetime, now: datetime | None = None
    ) -> DispatchReport:
        """Exécute un cycle complet et attend l'issue des livraisons lancées.

        Raises:
            StorageFailure: si la collecte des baux échoue.
        """
        ref = now if now is not None else utcnow()
        payload = Pingback(tag=tag, changed_at=truncate_ms(changed_at))
        report = DispatchReport(tag=tag, changed_at=payload.changed_at)
        leases = self._leases.active_leases_for(tag, ref)
        futures: list[Future] = []
        for lease in leases:
            fut = self._schedule(lease, payload)
            if fut is None:
                report.coalesced += 1
            else:
                futures.append(fut)
        for fut in futures:
            try:
                report.attempts.append(fut.result())
            except Exception:
                log.exception("pingback_worker_failed", tag=tag)
        log.info(
            "dispatch_cycle",
            tag=tag,
            changed_at=payload.changed_at.isoformat(),
            leases=len(leases),
            delivered=report.delivered,
            failed=report.failed,
            dropped=report.dropped,
            coalesced=report.coalesced,
        )
        return report

    def notify(self, tag: str, changed_at: datetime) -> Future | None:
        """Lance un cycle en arrière-plan (fire-and-forget); ne lève jamais."""
        try:
            fut = self._cycles.submit(self.dispatch, tag, changed_at)
        except RuntimeError:
            log.warning("dispatcher_closed", tag=tag)
            return None
        fut.add_done_callback(_log_cycle_error)
        return fut

    def in_flight(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def close(self) -> None:
        self._cycles.shutdown(wait=True)
        self._pool.shutdown(wait=True)
        close = getattr(self._transport, "close", None)
        if callable(close):
            close()

    # --- Sérialisation par bail ---

    def _schedule(self, lease: Lease, payload: Pingback) -> Future | None:
        key = lease.key
        with self._lock:
            current = self._in_flight.get(key)
            if current is not None:
                if payload.changed_at > current.changed_at:
                    queued = self._pending.get(key)
                    if queued is None or payload.changed_at > queued.changed_at:
                        self._pending[key] = payload
                DISPATCH_COALESCED.inc()
                return None
            self._in_flight[key] = payload
            DISPATCH_IN_FLIGHT.inc()
        try:
            return self._pool.submit(self._drain, lease, payload)
        except RuntimeError:
            self._release(key)
            raise

    def _drain(self, lease: Lease, payload: Pingback) -> DeliveryAttempt:
        """Livre au bail puis enchaîne les changements déposés entre-temps."""
        key = lease.key
        held = True
        try:
            first = self._attempt(lease, payload)
            attempt = first
            while True:
                nxt = self._take_pending(key, attempt.still_active)
                if nxt is None:
                    held = False
                    return first
                current = self._leases.get(*key)
                if current is None or not current.is_active(utcnow()):
                    return first
                attempt = self._attempt(current, nxt)
        finally:
            if held:
                self._release(key)

    def _take_pending(self, key: LeaseKey, still_active: bool) -> Pingback | None:
        with self._lock:
            pending = self._pending.pop(key, None)
            if pending is None or not still_active:
                if self._in_flight.pop(key, None) is not None:
                    DISPATCH_IN_FLIGHT.dec()
                return None
            self._in_flight[key] = pending
            return pending

    def _release(self, key: LeaseKey) -> None:
        with self._lock:
            self._pending.pop(key, None)
            if self._in_flight.pop(key, None) is not None:
                DISPATCH_IN_FLIGHT.dec()

    # --- Livraison ---

    def _attempt(self, lease: Lease, payload: Pingback) -> DeliveryAttempt:
        outcome = "success"
        attempts = 0
        for attempts in range(1, self._retries + 2):
            try:
                self._transport.deliver(lease.endpoint, payload)
            except DeliveryFailure as exc:
                outcome = "timeout" if exc.timeout else "failure"
                log.info(
                    "pingback_attempt_failed",
                    tag=lease.tag,
                    endpoint=lease.endpoint,
                    attempt=attempts,
                    reason=exc.message,
                )
                continue
            outcome = "success"
            break
        if outcome == "success":
            self._leases.record_success(lease)
            still_active = True
        else:
            still_active = self._leases.record_failure(lease).still_active
        PINGBACK_DELIVERIES.labels(outcome).inc()
        log.debug(
            "pingback_outcome",
            tag=lease.tag,
            endpoint=lease.endpoint,
            outcome=outcome,
            attempts=attempts,
            still_active=still_active,
        )
        return DeliveryAttempt(
            lease=lease,
            payload=payload,
            outcome=outcome,
            attempts=attempts,
            still_active=still_active,
        )


def _log_cycle_error(fut: Future) -> None:
    exc = fut.exception()
    if exc is not None:
        log.error("dispatch_cycle_failed", error=type(exc).__name__, message=str(exc))
