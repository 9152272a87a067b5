"""Gestion standardisée des erreurs API (enveloppe `{status: "error", message}`).

Les erreurs du domaine sont converties en réponses JSON bien formées; elles
n'interrompent jamais le pipeline de requêtes par une exception non gérée.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tagfeed.core.http_constants import (
    HTTP_BAD_REQUEST,
    HTTP_INTERNAL_SERVER_ERROR,
    HTTP_NOT_FOUND,
    HTTP_SERVICE_UNAVAILABLE,
)
from tagfeed.domain.errors import InvalidArgument, NotFound, StorageFailure, TagFeedError

log = structlog.get_logger(__name__)


def error_response(status_code: int, message: str) -> JSONResponse:
    """Construit l'enveloppe d'erreur standard."""
    return JSONResponse(status_code=status_code, content={"status": "error", "message": message})


def status_for(exc: TagFeedError) -> int:
    if isinstance(exc, NotFound):
        return HTTP_NOT_FOUND
    if isinstance(exc, InvalidArgument):
        return HTTP_BAD_REQUEST
    if isinstance(exc, StorageFailure):
        return HTTP_SERVICE_UNAVAILABLE
    return HTTP_INTERNAL_SERVER_ERROR


async def handle_domain_error(request: Request, exc: TagFeedError) -> JSONResponse:
    """Convertit une erreur du domaine en réponse `status: error`."""
    status_code = status_for(exc)
    message = exc.message
    if isinstance(exc, StorageFailure):
        log.error("storage_failure", path=request.url.path, error=exc.message)
        message = "Storage unavailable"
    else:
        log.info("request_rejected", path=request.url.path, status=status_code, error=exc.message)
    return error_response(status_code, message)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Erreurs de validation FastAPI (corps JSON mal formé, etc.)."""
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query"))
    if not field:
        return error_response(HTTP_BAD_REQUEST, "Invalid request")
    return error_response(HTTP_BAD_REQUEST, f"Invalid parameter {field}: {first.get('msg')}")


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    log.exception("unhandled_error", path=request.url.path)
    return error_response(HTTP_INTERNAL_SERVER_ERROR, "Internal error")


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TagFeedError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
