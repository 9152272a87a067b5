"""Post-commit hooks: actions exécutées uniquement après un commit effectif.

Utilisé pour émettre l'évènement `content_mutated` du modèle de contenu SQL:
si la transaction est annulée, aucun pingback n'est déclenché.
"""

from __future__ import annotations

import functools
from collections.abc import Callable

import structlog
from sqlalchemy import event
from sqlalchemy.orm import Session

log = structlog.get_logger(__name__)

_ACTIONS_KEY = "_post_commit_actions"
_BOUND_KEY = "_post_commit_bound"


def _ensure_action_list(session: Session) -> list[Callable[[], None]]:
    """Ensure action list container exists on session.info and return it."""
    actions = session.info.get(_ACTIONS_KEY)
    if actions is None:
        actions = []
        session.info[_ACTIONS_KEY] = actions
        _bind_session_events(session)
    return actions


def _bind_session_events(session: Session) -> None:
    """Bind commit/rollback events once for the given session instance."""
    if session.info.get(_BOUND_KEY):
        return
    session.info[_BOUND_KEY] = True

    @event.listens_for(session, "after_commit")
    def _after_commit(_session: Session) -> None:
        actions = list(_session.info.get(_ACTIONS_KEY) or [])
        _session.info[_ACTIONS_KEY] = []
        for action in actions:
            # La transaction est déjà validée: une action en échec ne doit pas casser l'appelant
            try:
                action()
            except Exception:
                log.exception("post_commit_action_failed")

    @event.listens_for(session, "after_rollback")
    def _after_rollback(_session: Session) -> None:
        _session.info[_ACTIONS_KEY] = []


def register_action_after_commit(
    session: Session,
    func: Callable[..., object],
    *args,
    **kwargs,
) -> None:
    """Register an arbitrary callable to run after a successful commit.

    La fonction est stockée dans la session et exécutée lors de l'évènement
    `after_commit`. En cas de rollback, elle est oubliée.
    """
    bound = functools.partial(func, *args, **kwargs)
    _ensure_action_list(session).append(bound)


__all__ = ["register_action_after_commit"]
