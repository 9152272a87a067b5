# ============================================================
# Tests : tests/test_routes_tags.py
# Objet  : Endpoints /do/api/tags/{name}/(get|ping|subscribe|unsubscribe).
# ============================================================
"""
Tests des routes de l'API des tags.

Ce module vérifie les enveloppes de réponse, les messages d'erreur publics et
le cycle abonnement -> mutation -> pingback.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from tagfeed.api.routes_tags import MISSING_LEASE, MISSING_SINCE, MISSING_URL
from tagfeed.core.http_constants import (
    HTTP_BAD_REQUEST,
    HTTP_NOT_FOUND,
    HTTP_OK,
    HTTP_SERVICE_UNAVAILABLE,
)
from tagfeed.domain.errors import StorageFailure
from tests.conftest import T0
from tests.fakes import item, wait_for

URL = "http://subscriber.example/ping"
BASE = "/do/api/tags"


@pytest.fixture
def seeded(container, client: TestClient) -> TestClient:
    for i in range(1, 26):
        container.content_model.save(item(i, T0 + timedelta(seconds=i), "popular"))
    return client


def _error(resp, status: int, message: str) -> None:
    assert resp.status_code == status
    assert resp.json() == {"status": "error", "message": message}


def test_get_last_page(seeded: TestClient) -> None:
    r = seeded.get(f"{BASE}/popular/get", params={"offset": 20, "limit": 20})
    assert r.status_code == HTTP_OK
    body = r.json()
    assert body["status"] == "success"
    assert body["query"] == {"offset": 20, "limit": 20, "where": {"tags": "popular"}}
    assert body["results"]["count"] == 25
    assert [i["id"] for i in body["results"]["items"]] == [5, 4, 3, 2, 1]


def test_get_clamps_limit(seeded: TestClient) -> None:
    r = seeded.get(f"{BASE}/popular/get", params={"limit": 1000})
    assert r.json()["query"]["limit"] == 100
    assert len(r.json()["results"]["items"]) == 25


def test_get_rejects_negative_offset(seeded: TestClient) -> None:
    _error(seeded.get(f"{BASE}/popular/get?offset=-1"), HTTP_BAD_REQUEST, "offset must be >= 0")


@pytest.mark.parametrize("action", ["get", "ping?since=2013-04-01", "subscribe", "unsubscribe"])
def test_unknown_tag(client: TestClient, action: str) -> None:
    _error(client.get(f"{BASE}/missing/{action}"), HTTP_NOT_FOUND, "Tag not found")


def test_ping(seeded: TestClient) -> None:
    r = seeded.get(f"{BASE}/popular/ping", params={"since": "2013-04-01"})
    assert r.json() == {"status": "updated"}
    r = seeded.get(f"{BASE}/popular/ping", params={"since": "2013-04-02T00:00:00Z"})
    assert r.json() == {"status": "same"}


def test_ping_requires_since(seeded: TestClient) -> None:
    _error(seeded.get(f"{BASE}/popular/ping"), HTTP_BAD_REQUEST, MISSING_SINCE)
    _error(seeded.get(f"{BASE}/popular/ping?since="), HTTP_BAD_REQUEST, MISSING_SINCE)


def test_ping_rejects_malformed_since(seeded: TestClient) -> None:
    r = seeded.get(f"{BASE}/popular/ping", params={"since": "yesterday"})
    assert r.status_code == HTTP_BAD_REQUEST
    assert r.json()["status"] == "error"


def test_subscribe_and_unsubscribe(seeded: TestClient, container) -> None:
    r = seeded.get(f"{BASE}/popular/subscribe", params={"url": URL, "lease": 60000})
    assert r.status_code == HTTP_OK
    body = r.json()
    assert body["status"] == "success" and body["message"] == "Subscribed to tag"
    assert container.leases.get("popular", URL) is not None

    r = seeded.post(f"{BASE}/popular/unsubscribe", params={"url": URL})
    assert r.json() == {"status": "success", "message": "Unsubscribed from tag"}
    assert container.leases.count() == 0
    # Sans bail existant: succès quand même
    r = seeded.get(f"{BASE}/popular/unsubscribe", params={"url": URL})
    assert r.status_code == HTTP_OK


def test_subscribe_post_renews(seeded: TestClient, container) -> None:
    seeded.post(f"{BASE}/popular/subscribe", params={"url": URL, "lease": 1000})
    seeded.post(f"{BASE}/popular/subscribe", params={"url": URL, "lease": 60000})
    assert container.leases.count() == 1


def test_subscribe_requires_url_then_lease(seeded: TestClient) -> None:
    _error(seeded.get(f"{BASE}/popular/subscribe?lease=1000"), HTTP_BAD_REQUEST, MISSING_URL)
    r = seeded.get(f"{BASE}/popular/subscribe", params={"url": URL})
    _error(r, HTTP_BAD_REQUEST, MISSING_LEASE)
    for lease in ("0", "-10", "abc", "1.5"):
        r = seeded.get(f"{BASE}/popular/subscribe", params={"url": URL, "lease": lease})
        _error(r, HTTP_BAD_REQUEST, MISSING_LEASE)


def test_subscribe_rejects_non_http_url(seeded: TestClient) -> None:
    r = seeded.get(f"{BASE}/popular/subscribe", params={"url": "ftp://x.example", "lease": 10})
    _error(r, HTTP_BAD_REQUEST, "endpoint must be an absolute http(s) URL")


def test_unsubscribe_requires_url(seeded: TestClient) -> None:
    _error(seeded.get(f"{BASE}/popular/unsubscribe"), HTTP_BAD_REQUEST, MISSING_URL)


def test_storage_failure_maps_to_503(client: TestClient, container, monkeypatch) -> None:
    def boom(name):
        raise StorageFailure("storage error: OperationalError")

    monkeypatch.setattr(container.tags, "resolve", boom)
    _error(client.get(f"{BASE}/popular/get"), HTTP_SERVICE_UNAVAILABLE, "Storage unavailable")


def test_subscriber_receives_pingback(seeded: TestClient, container, transport) -> None:
    """Abonnement puis mutation: l'abonné reçoit {tag, changedAt}."""
    seeded.get(f"{BASE}/popular/subscribe", params={"url": URL, "lease": 60000})
    changed = T0 + timedelta(days=1)
    container.content_model.save(item(26, changed, "popular"))
    assert wait_for(lambda: changed in transport.changed_at_for(URL))
    r = seeded.get(f"{BASE}/popular/ping", params={"since": "2013-04-01T12:00:00Z"})
    assert r.json() == {"status": "updated"}


def test_request_id_is_echoed(client: TestClient) -> None:
    r = client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert r.headers["X-Request-ID"] == "abc-123"
    assert client.get("/health").headers["X-Request-ID"]
