"""Configuration de test pour pytest avec gestion des chemins.

Ce module ajoute la racine du projet au sys.path et fournit les fixtures
partagées: configuration, conteneur mémoire ou SQL, client HTTP de test.
"""

from __future__ import annotations

import os
import sys
from datetime import UTC, datetime

import pytest

# Ensure project root is on sys.path so that
# imports like `from tagfeed...` resolve.
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from fastapi.testclient import TestClient  # noqa: E402

from tagfeed.app.main import create_app  # noqa: E402
from tagfeed.core.container import Container, set_container  # noqa: E402
from tagfeed.core.settings import Settings  # noqa: E402
from tests.fakes import FakeTransport  # noqa: E402

T0 = datetime(2013, 4, 1, tzinfo=UTC)


def make_settings(**overrides) -> Settings:
    """Settings de test: stockage mémoire, pas de Redis ni de balayeur."""
    values = {
        "DATABASE_URL": None,
        "REDIS_URL": None,
        "LEASE_SWEEP_ENABLED": False,
        "DISPATCH_MODE": "inline",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def container(transport: FakeTransport):
    """Conteneur mémoire dont les pingbacks passent par `FakeTransport`."""
    c = Container(make_settings(), pingback_client=transport)
    set_container(c)
    yield c
    set_container(None)
    c.close()


@pytest.fixture
def sql_container(transport: FakeTransport, tmp_path):
    """Conteneur adossé à un fichier SQLite (connexions distinctes par thread)."""
    url = f"sqlite+pysqlite:///{tmp_path / 'tagfeed.db'}"
    c = Container(make_settings(DATABASE_URL=url), pingback_client=transport)
    set_container(c)
    yield c
    set_container(None)
    c.close()


@pytest.fixture
def client(container: Container) -> TestClient:
    return TestClient(create_app(container))
