# ============================================================
# Tests : tests/test_lease_store.py
# Objet  : Cycle de vie des baux (mémoire + SQLite mémoire).
# ============================================================
"""
Tests du magasin de baux d'abonnement.

Les mêmes scénarios sont joués sur `InMemoryLeaseStore` et `SqlLeaseStore`:
idempotence de `subscribe`, expiration stricte, seuil d'échecs et balayage.
"""

from __future__ import annotations

import time
from datetime import timedelta

import pytest

from tagfeed.domain.errors import InvalidArgument, InvalidLease
from tagfeed.domain.lease_store import LeaseStore, LeaseSweeper
from tagfeed.infra.repo.db import get_engine, get_session_factory
from tagfeed.infra.repo.lease_repo import SqlLeaseStore
from tagfeed.infra.repo.models import Base
from tagfeed.infra.repositories import InMemoryLeaseStore
from tests.conftest import T0

URL = "http://subscriber.example/ping"
LEASE_MS = 60000
THRESHOLD = 5


@pytest.fixture(params=["memory", "sql"])
def store(request) -> LeaseStore:
    if request.param == "memory":
        return InMemoryLeaseStore(failure_threshold=THRESHOLD)
    engine = get_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    return SqlLeaseStore(get_session_factory(engine), failure_threshold=THRESHOLD)


def test_subscribe_sets_expiry(store: LeaseStore) -> None:
    lease = store.subscribe("popular", URL, LEASE_MS, now=T0)
    assert lease.expires_at == T0 + timedelta(milliseconds=LEASE_MS)
    assert store.get("popular", URL) == lease
    assert store.count() == 1


def test_expiry_is_strict(store: LeaseStore) -> None:
    """Actif à T0+59999ms, expiré à T0+60000ms et au-delà."""
    store.subscribe("popular", URL, LEASE_MS, now=T0)
    assert len(store.active_leases_for("popular", T0 + timedelta(milliseconds=59999))) == 1
    assert store.active_leases_for("popular", T0 + timedelta(milliseconds=60000)) == []
    assert store.active_leases_for("popular", T0 + timedelta(milliseconds=60001)) == []


def test_resubscribe_replaces_lease(store: LeaseStore) -> None:
    """Un second subscribe sur (tag, endpoint) renouvelle et remet les échecs à zéro."""
    first = store.subscribe("popular", URL, LEASE_MS, now=T0)
    store.record_failure(first)
    later = T0 + timedelta(seconds=30)
    renewed = store.subscribe("popular", URL, 120000, now=later)
    assert store.count() == 1
    current = store.get("popular", URL)
    assert current is not None
    assert current.expires_at == renewed.expires_at == later + timedelta(minutes=2)
    assert current.failure_count == 0


def test_unsubscribe_matches_normalized_endpoint(store: LeaseStore) -> None:
    """Les espaces autour de l'URL sont ignorés à l'abonnement comme au désabonnement."""
    store.subscribe("popular", " http://x.example/p ", LEASE_MS, now=T0)
    assert store.get("popular", "http://x.example/p") is not None
    assert store.unsubscribe("popular", " http://x.example/p ") is True
    assert store.count() == 0


def test_leases_are_scoped_per_tag(store: LeaseStore) -> None:
    store.subscribe("popular", URL, LEASE_MS, now=T0)
    store.subscribe("news", URL, LEASE_MS, now=T0)
    store.subscribe("popular", "https://other.example/hook", LEASE_MS, now=T0)
    active = store.active_leases_for("popular", T0)
    assert {lease.endpoint for lease in active} == {URL, "https://other.example/hook"}
    assert all(lease.tag == "popular" for lease in active)


def test_unsubscribe(store: LeaseStore) -> None:
    store.subscribe("popular", URL, LEASE_MS, now=T0)
    assert store.unsubscribe("popular", URL) is True
    assert store.unsubscribe("popular", URL) is False
    assert store.get("popular", URL) is None


def test_failure_threshold_evicts(store: LeaseStore) -> None:
    """4 échecs consécutifs: bail conservé; au 5e il est supprimé."""
    lease = store.subscribe("popular", URL, LEASE_MS)
    for n in range(1, THRESHOLD):
        outcome = store.record_failure(lease)
        assert outcome.still_active is True
        assert outcome.failure_count == n
    outcome = store.record_failure(lease)
    assert outcome.still_active is False
    assert outcome.failure_count == THRESHOLD
    assert store.get("popular", URL) is None


def test_success_resets_failures(store: LeaseStore) -> None:
    lease = store.subscribe("popular", URL, LEASE_MS)
    for _ in range(THRESHOLD - 1):
        store.record_failure(lease)
    store.record_success(lease)
    current = store.get("popular", URL)
    assert current is not None and current.failure_count == 0
    assert store.record_failure(lease).still_active is True


def test_failure_on_missing_lease(store: LeaseStore) -> None:
    lease = store.subscribe("popular", URL, LEASE_MS)
    store.unsubscribe("popular", URL)
    outcome = store.record_failure(lease)
    assert outcome.still_active is False and outcome.failure_count == 0


def test_sweep_removes_expired_only(store: LeaseStore) -> None:
    store.subscribe("popular", URL, 1000, now=T0)
    store.subscribe("popular", "https://other.example/hook", LEASE_MS, now=T0)
    assert store.sweep(T0 + timedelta(seconds=1)) == 1
    assert store.count() == 1
    assert store.get("popular", "https://other.example/hook") is not None


@pytest.mark.parametrize("duration", [0, -1, True, "60000", 1.5, None])
def test_invalid_duration(store: LeaseStore, duration) -> None:
    with pytest.raises(InvalidLease):
        store.subscribe("popular", URL, duration)
    assert store.count() == 0


@pytest.mark.parametrize("endpoint", ["", "not a url", "ftp://files.example/x", "http://"])
def test_invalid_endpoint(store: LeaseStore, endpoint) -> None:
    with pytest.raises(InvalidArgument):
        store.subscribe("popular", endpoint, LEASE_MS)


def test_sweeper_thread_purges_expired() -> None:
    """Le balayeur de fond supprime les baux expirés puis s'arrête proprement."""
    store = InMemoryLeaseStore()
    store.subscribe("popular", URL, 1, now=T0)
    sweeper = LeaseSweeper(store, interval_s=0.01)
    sweeper.start()
    try:
        deadline = time.monotonic() + 2
        while store.count() and time.monotonic() < deadline:
            time.sleep(0.01)
        assert store.count() == 0
        assert sweeper.running is True
    finally:
        sweeper.stop()
    assert sweeper.running is False


def test_sweeper_run_once() -> None:
    store = InMemoryLeaseStore()
    store.subscribe("popular", URL, 1, now=T0)
    store.subscribe("popular", "https://other.example/hook", LEASE_MS)
    assert LeaseSweeper(store).run_once() == 1
