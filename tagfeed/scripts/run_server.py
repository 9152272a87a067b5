"""
Script de lancement du serveur HTTP.

Lance l'application FastAPI avec uvicorn sur `APP_HOST`/`APP_PORT`. Le balayeur
de baux et le dispatcher vivent dans le processus (voir le lifespan de l'app).
"""

import uvicorn

from tagfeed.core.settings import get_settings


def main():
    """Point d'entrée `tagfeed-server`."""
    settings = get_settings()
    uvicorn.run(
        "tagfeed.app.main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=False,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
