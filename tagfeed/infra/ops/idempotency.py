"""Idempotency helpers (Redis or in-memory).

- IdempotencyStore: `acquire(key, ttl)` / `release(key)` pour dédupliquer un
  évènement ou une tâche dans une fenêtre TTL.
- idempotent_task: décorateur de tâche Celery basé sur ce store.

Règle de clé recommandée:
    {scope}:{param_significatif}...

Ex: `make_idem_key("content", "post", "42", "1700000000000")` pour une mutation
de contenu, `make_idem_key("dispatch", tag, changed_at)` pour un cycle de
diffusion. Backend Redis si `REDIS_URL` est défini, mémoire sinon.
"""

from __future__ import annotations

import functools
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import redis
import structlog

log = structlog.get_logger(__name__)


def make_idem_key(scope: str, *parts: object) -> str:
    """Compose a stable idempotency key following `{scope}:{param}` rule."""
    safe_parts = [str(p).replace("\n", " ").replace("\r", " ") for p in parts]
    suffix = ":".join(safe_parts)
    return f"idem:{scope}:{suffix}" if suffix else f"idem:{scope}"


class _InMemoryKV:
    """KV mémoire à expiration; les clés expirées sont purgées au fil des écritures."""

    purge_interval_s = 1.0

    def __init__(self) -> None:
        self._exp: dict[str, float] = {}
        self._lock = threading.Lock()
        self._next_purge = 0.0

    def size(self) -> int:
        return len(self._exp)

    def set(self, name: str, value: str, nx: bool = False, ex: int | None = None) -> bool:
        now = time.time()
        with self._lock:
            if now >= self._next_purge:
                self._purge(now)
            exp = self._exp.get(name)
            if nx and exp is not None and exp > now:
                return False
            self._exp[name] = now + ex if ex else float("inf")
            return True

    def delete(self, name: str) -> int:
        with self._lock:
            return 1 if self._exp.pop(name, None) is not None else 0

    def _purge(self, now: float) -> None:
        expired = [k for k, exp in self._exp.items() if exp <= now]
        for k in expired:
            del self._exp[k]
        self._next_purge = now + self.purge_interval_s


def redis_client(url: str | None):
    """Crée un client Redis, ou None si aucune URL."""
    if not url:
        return None
    return redis.Redis.from_url(url, decode_responses=True)


@dataclass
class IdempotencyStore:
    """Store pour l'idempotence avec TTL.

    En cas d'indisponibilité de Redis, `acquire` laisse passer (fail-open): un
    doublon est préférable à une mutation jamais propagée.
    """

    ttl_seconds: int = 300
    client: Any = field(default=None)

    def __post_init__(self) -> None:
        if self.client is None:
            self.client = _InMemoryKV()

    def acquire(self, key: str, ttl: int | None = None) -> bool:
        """Acquiert une clé; False si elle est déjà prise dans la fenêtre TTL."""
        ttl = int(ttl or self.ttl_seconds)
        try:
            return bool(self.client.set(name=key, value="1", nx=True, ex=ttl))
        except redis.RedisError as err:
            log.warning("idempotency_store_unavailable", error=type(err).__name__)
            return True

    def release(self, key: str) -> None:
        """Libère une clé (ex: traitement échoué, à rejouer)."""
        try:
            self.client.delete(key)
        except redis.RedisError as err:
            log.warning("idempotency_release_failed", error=type(err).__name__)


def idempotent_task(
    store: Callable[[], IdempotencyStore],
    key_builder: Callable[..., str],
    ttl_seconds: int = 300,
    on_duplicate_return: object = "duplicate",
):
    """Decorate a task function to enforce idempotence via shared store.

    Si la clé existe déjà (dans la fenêtre TTL), la fonction décorée renvoie
    immédiatement `on_duplicate_return`. En cas d'exception la clé est libérée
    pour permettre un nouvel essai.

    Args:
        store: Fournisseur du store (résolu à l'appel).
        key_builder: Fonction construisant une clé stable à partir des arguments.
        ttl_seconds: Fenêtre d'idempotence en secondes.
        on_duplicate_return: Valeur renvoyée si doublon détecté.
    """

    def _decorator(func):
        @functools.wraps(func)
        def _wrapper(*args, **kwargs):
            idem = store()
            key = key_builder(*args, **kwargs)
            if not idem.acquire(key, ttl=ttl_seconds):
                log.info("task_deduplicated", task=func.__name__, key=key)
                return on_duplicate_return
            try:
                return func(*args, **kwargs)
            except Exception:
                idem.release(key)
                raise

        return _wrapper

    return _decorator
