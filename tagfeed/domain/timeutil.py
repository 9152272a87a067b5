"""Utilitaires d'horodatage (UTC, précision milliseconde)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MS = timedelta(milliseconds=1)


def utcnow() -> datetime:
    """Instant courant en UTC, tronqué à la milliseconde."""
    return truncate_ms(datetime.now(UTC))


def ensure_utc(ts: datetime) -> datetime:
    """Rend un datetime conscient du fuseau (naïf => UTC)."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def truncate_ms(ts: datetime) -> datetime:
    """Tronque à la milliseconde, unité de stockage des horodatages."""
    ts = ensure_utc(ts)
    return ts.replace(microsecond=(ts.microsecond // 1000) * 1000)


def to_millis(ts: datetime) -> int:
    """Convertit en millisecondes depuis l'epoch."""
    return (ensure_utc(ts) - _EPOCH) // _ONE_MS


def from_millis(ms: int) -> datetime:
    """Convertit des millisecondes epoch en datetime UTC."""
    return _EPOCH + int(ms) * _ONE_MS
