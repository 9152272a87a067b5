# Schémas Pydantic exposés par l'API (requêtes et réponses).

from datetime import datetime

from pydantic import BaseModel, Field


class ContentMutationRequest(BaseModel):
    """Évènement `content_mutated` publié par le modèle de contenu.

    Champs:
    - type: str (type de contenu, ex: "Content")
    - id: int | str (identifiant du contenu)
    - tags: list[str] (tags concernés, anciens et nouveaux)
    - timestamp: datetime (instant de la mutation, ISO-8601)
    """

    type: str = Field(min_length=1)
    id: int | str
    tags: list[str] = Field(default_factory=list)
    timestamp: datetime


class ContentMutationResponse(BaseModel):
    """Tags touchés par la mutation (vide si l'évènement est un doublon)."""

    status: str = "success"
    touched: list[str]
