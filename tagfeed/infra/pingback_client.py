"""Client HTTP de livraison des pingbacks vers les abonnés.

Objectif du module
------------------
- POSTer `{"tag", "changedAt"}` en JSON sur l'endpoint d'un bail.
- Borner chaque appel par un timeout; tout échec devient `DeliveryFailure`.
"""

from __future__ import annotations

import time

import httpx
import structlog

from tagfeed.app.metrics import PINGBACK_LATENCY
from tagfeed.core.http_constants import HTTP_SUCCESS_MAX, HTTP_SUCCESS_MIN
from tagfeed.domain.entities import Pingback
from tagfeed.domain.errors import DeliveryFailure


class PingbackClient:
    """Transport httpx réutilisable (timeouts/pool) pour les pingbacks."""

    def __init__(
        self,
        timeout_s: float = 5.0,
        max_connections: int = 50,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._log = structlog.get_logger(__name__).bind(component="pingback_client")
        timeout = httpx.Timeout(timeout_s)
        limits = httpx.Limits(
            max_keepalive_connections=min(20, max_connections), max_connections=max_connections
        )
        self._client = httpx.Client(
            headers={"Content-Type": "application/json", "User-Agent": "tagfeed-pingback"},
            timeout=timeout,
            limits=limits,
            transport=transport,
            follow_redirects=False,
        )

    def deliver(self, endpoint: str, pingback: Pingback) -> None:
        """Livre un pingback.

        Raises:
            DeliveryFailure: statut non 2xx, timeout ou erreur réseau.
        """
        start = time.perf_counter()
        try:
            resp = self._client.post(endpoint, json=pingback.to_payload())
        except httpx.TimeoutException as exc:
            raise DeliveryFailure(endpoint, f"timeout: {exc}", timeout=True) from exc
        except httpx.HTTPError as exc:
            raise DeliveryFailure(endpoint, f"network error: {type(exc).__name__}") from exc
        finally:
            PINGBACK_LATENCY.observe(time.perf_counter() - start)
        if not HTTP_SUCCESS_MIN <= resp.status_code < HTTP_SUCCESS_MAX:
            raise DeliveryFailure(
                endpoint, f"subscriber returned {resp.status_code}", status_code=resp.status_code
            )
        self._log.debug("pingback_sent", endpoint=endpoint, status=resp.status_code)

    def close(self) -> None:
        self._client.close()
