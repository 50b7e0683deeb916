"""Domain errors and their translation to consistent API error responses."""

from __future__ import annotations

from typing import Any

from fastapi import status


class InventoryError(Exception):
    """Base class for errors a client can act on.

    ``code`` is machine-distinguishable, ``message`` is for humans and
    ``extra`` is merged into the JSON payload (e.g. ``existingId``).
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        **extra: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra

    def to_payload(self) -> dict[str, Any]:
        return {"code": self.code, "error": self.message, **self.extra}


class NotFound(InventoryError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"


class InvalidArgument(InventoryError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "invalid_argument"


class Conflict(InventoryError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "conflict"


class PersistenceFailure(InventoryError):
    default_code = "persistence_failure"


class ExternalLookupFailure(InventoryError):
    """Raised by lookup sources; callers degrade it to "no data"."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_code = "lookup.external_failure"
