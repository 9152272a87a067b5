"""Tests des actions post-commit sur une session SQLAlchemy."""

from __future__ import annotations

from sqlalchemy import text

from tagfeed.infra.ops.post_commit import register_action_after_commit
from tagfeed.infra.repo.db import get_engine, get_session_factory


def _factory():
    return get_session_factory(get_engine("sqlite+pysqlite:///:memory:"))


def test_action_runs_after_commit() -> None:
    calls: list[tuple] = []
    session = _factory()()
    register_action_after_commit(session, lambda *a, **k: calls.append((a, k)), 1, tag="x")
    session.execute(text("SELECT 1"))
    assert calls == []
    session.commit()
    assert calls == [((1,), {"tag": "x"})]
    # Les actions ne sont exécutées qu'une fois
    session.commit()
    assert len(calls) == 1
    session.close()


def test_action_dropped_on_rollback() -> None:
    calls: list[int] = []
    session = _factory()()
    session.execute(text("SELECT 1"))
    register_action_after_commit(session, calls.append, 1)
    session.rollback()
    session.commit()
    assert calls == []
    session.close()


def test_failing_action_does_not_break_commit() -> None:
    calls: list[int] = []

    def boom() -> None:
        raise RuntimeError("listener failed")

    session = _factory()()
    session.execute(text("SELECT 1"))
    register_action_after_commit(session, boom)
    register_action_after_commit(session, calls.append, 2)
    session.commit()
    assert calls == [2]
    session.close()
