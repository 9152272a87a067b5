"""
Taxonomie des erreurs du domaine tags/abonnements.

- `NotFound`: tag, type de contenu ou abonnement absent.
- `InvalidArgument`: pagination, endpoint, durée de bail ou date `since` invalides.
- `DeliveryFailure`: échec (transitoire) de livraison d'un pingback; géré par le dispatcher.
- `StorageFailure`: erreur d'E/S du stockage; remontée telle quelle, jamais rejouée ici.
"""

from __future__ import annotations


class TagFeedError(Exception):
    """Erreur de base portant un message présentable à l'appelant."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(TagFeedError):
    """Ressource absente."""


class TagNotFound(NotFound):
    """Aucun tag ne porte ce nom."""

    def __init__(self, name: str) -> None:
        super().__init__("Tag not found")
        self.name = name


class UnknownContentType(NotFound):
    """Type de contenu non enregistré dans le registre."""

    def __init__(self, content_type: str) -> None:
        super().__init__(f"Unknown content type: {content_type}")
        self.content_type = content_type


class InvalidArgument(TagFeedError):
    """Argument mal formé ou manquant."""


class InvalidLease(InvalidArgument):
    """Durée de bail absente ou non strictement positive."""


class DeliveryFailure(TagFeedError):
    """Échec de livraison d'un pingback vers un abonné."""

    def __init__(
        self,
        endpoint: str,
        message: str,
        *,
        timeout: bool = False,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.timeout = timeout
        self.status_code = status_code


class StorageFailure(TagFeedError):
    """Erreur d'E/S remontée par un backend de stockage."""
