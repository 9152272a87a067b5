# ============================================================
# Module : tagfeed/infra/repo/lease_repo.py
# Objet  : Stockage SQL durable des baux d'abonnement.
# Invariants :
#  - Une transaction par opération publique du LeaseStore.
#  - Unicité (tag, endpoint) garantie par contrainte.
# ============================================================

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from tagfeed.domain.entities import FailureOutcome, Lease
from tagfeed.domain.errors import StorageFailure
from tagfeed.domain.lease_store import LeaseStore
from tagfeed.domain.timeutil import from_millis, to_millis

from .db import session_scope
from .models import LeaseORM


def _to_lease(row: LeaseORM) -> Lease:
    return Lease(
        tag=row.tag,
        endpoint=row.endpoint,
        created_at=from_millis(row.created_at_ms),
        expires_at=from_millis(row.expires_at_ms),
        failure_count=row.failure_count or 0,
    )


def _key_filter(tag: str, endpoint: str):
    return (LeaseORM.tag == tag, LeaseORM.endpoint == endpoint)


class SqlLeaseStore(LeaseStore):
    """LeaseStore adossé à SQLAlchemy (table `leases`)."""

    backend = "sql"

    def __init__(self, factory: sessionmaker, failure_threshold: int = 5) -> None:
        super().__init__(failure_threshold)
        self._factory = factory

    def count(self) -> int:
        with session_scope(self._factory) as s:
            return int(s.execute(select(func.count(LeaseORM.id))).scalar_one())

    def _upsert(self, lease: Lease) -> None:
        values = {
            "created_at_ms": to_millis(lease.created_at),
            "expires_at_ms": to_millis(lease.expires_at),
            "failure_count": 0,
        }
        try:
            self._write_lease(lease, values)
        except StorageFailure as err:
            # Souscription concurrente sur la même clé: on rejoue en mise à jour
            if not isinstance(err.__cause__, IntegrityError):
                raise
            self._write_lease(lease, values)

    def _write_lease(self, lease: Lease, values: dict) -> None:
        with session_scope(self._factory) as s:
            result = s.execute(
                update(LeaseORM).where(*_key_filter(lease.tag, lease.endpoint)).values(**values)
            )
            if result.rowcount == 0:
                s.add(LeaseORM(tag=lease.tag, endpoint=lease.endpoint, **values))

    def _delete(self, tag: str, endpoint: str) -> bool:
        with session_scope(self._factory) as s:
            result = s.execute(delete(LeaseORM).where(*_key_filter(tag, endpoint)))
            return result.rowcount > 0

    def _get(self, tag: str, endpoint: str) -> Lease | None:
        with session_scope(self._factory) as s:
            stmt = select(LeaseORM).where(*_key_filter(tag, endpoint))
            row = s.execute(stmt).scalar_one_or_none()
            return _to_lease(row) if row is not None else None

    def _list_for_tag(self, tag: str, as_of: datetime) -> list[Lease]:
        with session_scope(self._factory) as s:
            rows = s.execute(
                select(LeaseORM)
                .where(LeaseORM.tag == tag, LeaseORM.expires_at_ms > to_millis(as_of))
                .order_by(LeaseORM.id)
            ).scalars()
            return [_to_lease(r) for r in rows]

    def _increment_failures(self, tag: str, endpoint: str, threshold: int) -> FailureOutcome:
        with session_scope(self._factory) as s:
            s.execute(
                update(LeaseORM)
                .where(*_key_filter(tag, endpoint))
                .values(failure_count=LeaseORM.failure_count + 1)
            )
            count = s.execute(
                select(LeaseORM.failure_count).where(*_key_filter(tag, endpoint))
            ).scalar_one_or_none()
            if count is None:
                return FailureOutcome(still_active=False, failure_count=0)
            if count >= threshold:
                s.execute(delete(LeaseORM).where(*_key_filter(tag, endpoint)))
                return FailureOutcome(still_active=False, failure_count=count)
            return FailureOutcome(still_active=True, failure_count=count)

    def _reset_failures(self, tag: str, endpoint: str) -> None:
        with session_scope(self._factory) as s:
            s.execute(
                update(LeaseORM)
                .where(*_key_filter(tag, endpoint), LeaseORM.failure_count != 0)
                .values(failure_count=0)
            )

    def _delete_expired(self, as_of: datetime) -> int:
        with session_scope(self._factory) as s:
            result = s.execute(delete(LeaseORM).where(LeaseORM.expires_at_ms <= to_millis(as_of)))
            return result.rowcount or 0
