"""Définition et chargement des paramètres de configuration applicative.

Objectif du module
------------------
- Centraliser les paramètres (env/.env) via Pydantic Settings
- Résoudre le fichier `.env` à utiliser selon la stratégie: ENV_FILE > .env.{APP_ENV} > .env
- Exposer les seuils du mécanisme de pingback (timeouts, échecs, balayage des baux)
"""

import os
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


def _resolve_env_file() -> Path | str:
    """Retourne le fichier .env à charger (ENV_FILE > .env.{APP_ENV} > .env)."""
    explicit = os.getenv("ENV_FILE")
    if explicit:
        return explicit
    cwd = Path.cwd()
    specific = cwd / f".env.{os.getenv('APP_ENV', 'dev')}"
    if specific.exists():
        return specific
    return cwd / ".env"


class Settings(BaseSettings):
    """Modèle de configuration chargé depuis l'environnement et .env."""

    model_config = SettingsConfigDict(
        env_file=_resolve_env_file(),
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )
    APP_NAME: str = "tagfeed"
    APP_ENV: str = "dev"
    APP_DEBUG: bool = True
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000
    LOG_LEVEL: str = "DEBUG"

    # Stockage: SQL si DATABASE_URL est défini, mémoire sinon
    DATABASE_URL: str | None = None
    DB_AUTO_CREATE: bool = True
    REDIS_URL: str | None = None

    # Types de contenu interrogeables (JSON en variable d'env)
    CONTENT_TYPES: list[str] = ["Content"]

    # Pagination des requêtes par tag
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # Baux d'abonnement
    LEASE_FAILURE_THRESHOLD: int = 5
    LEASE_SWEEP_INTERVAL_S: float = 60.0
    LEASE_SWEEP_ENABLED: bool = True

    # Livraison des pingbacks
    DELIVERY_TIMEOUT_S: float = 5.0
    DELIVERY_RETRIES: int = 1
    DISPATCH_MAX_IN_FLIGHT: int = 16
    DISPATCH_MODE: Literal["inline", "celery"] = "inline"
    MUTATION_IDEMPOTENCY_TTL_S: int = 86400

    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/1"


def get_settings() -> Settings:
    """Construit et retourne la configuration de l'application."""
    return Settings()
