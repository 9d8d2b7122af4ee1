"""
directorio/core/errors.py — Domain error taxonomy
Each error carries a Spanish, user-displayable message and the HTTP status
the API answers with. Rendered by the exception handler in main.py.
"""
from __future__ import annotations

from typing import Optional


class DirectoryError(Exception):
    """Base class. Anything not more specific is a 500."""

    status_code: int = 500
    default_message: str = "Ocurrió un error inesperado. Por favor, intenta de nuevo."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message}


# ── Not found ─────────────────────────────────────────────────────────────────

class NotFoundError(DirectoryError):
    status_code = 404
    default_message = "Recurso no encontrado"


class BusinessNotFoundError(NotFoundError):
    default_message = "Negocio no encontrado"


class ReviewNotFoundError(NotFoundError):
    default_message = "Reseña no encontrada"


# ── Authorization ─────────────────────────────────────────────────────────────

class AuthenticationRequiredError(DirectoryError):
    status_code = 401
    default_message = "Debes iniciar sesión para continuar"


class UnauthorizedError(DirectoryError):
    status_code = 403
    default_message = "No tienes permiso para realizar esta acción"


class SelfReviewRejectedError(UnauthorizedError):
    default_message = "No puedes calificar tu propio negocio"


class SubscriptionLimitError(UnauthorizedError):
    default_message = "Has alcanzado el límite de negocios de tu plan"


# ── Validation ────────────────────────────────────────────────────────────────

class ValidationError(DirectoryError):
    status_code = 422
    default_message = "Los datos enviados no son válidos"

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.errors = errors or {}

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.errors:
            body["errors"] = self.errors
        return body


class NoValidTagsError(ValidationError):
    default_message = "Debes seleccionar al menos un aspecto para calificar"


class DuplicateReviewError(DirectoryError):
    status_code = 409
    default_message = "Ya has calificado este negocio"


# ── Throttling / upstream ─────────────────────────────────────────────────────

class RateLimitedError(DirectoryError):
    status_code = 429
    default_message = "Demasiadas solicitudes. Por favor, espere un momento."


class UpstreamUnavailableError(DirectoryError):
    status_code = 503
    default_message = "El servicio no está disponible. Por favor, intenta más tarde."


class WriteConflictError(UpstreamUnavailableError):
    """A conditional write lost against a concurrent update."""

    status_code = 409
    default_message = "El negocio fue modificado por otra solicitud. Intenta de nuevo."


def field_errors(errors: list[dict]) -> dict[str, str]:
    """pydantic / FastAPI error list -> {dotted.field: message}."""
    fields: dict[str, str] = {}
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        fields.setdefault(".".join(loc) or "body", error.get("msg", "Valor no válido"))
    return fields
