from typing import List, Optional, Sequence

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette import status
import logging

logger = logging.getLogger("ledger.errors")


class LedgerError(Exception):
    """Base for errors that map onto a structured API error payload."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    label: str = "Internal server error"

    def __init__(self, details: Optional[Sequence[str]] = None):
        self.details: List[str] = list(details or [])
        super().__init__(self.label if not self.details else "; ".join(self.details))

    def payload(self) -> dict:
        body: dict = {"error": self.label}
        if self.details:
            body["details"] = self.details
        return body


class FieldValidationError(LedgerError):
    status_code = status.HTTP_400_BAD_REQUEST
    label = "Validation failed"


class InputShapeError(FieldValidationError):
    """Body missing or not a JSON object; carries exactly one message."""


class InvalidCategoryError(LedgerError):
    status_code = status.HTTP_400_BAD_REQUEST
    label = "Invalid category"


class NotFoundError(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND
    label = "Expense not found"


class StorageUnavailableError(LedgerError):
    """Connection / driver failure in the storage layer."""


class DuplicateIdempotencyKeyError(LedgerError):
    """A uniqueness violation on the idempotency key escaped the atomic upsert.

    Recovered by the write coordinator; never reaches a client.
    """

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__([f"duplicate idempotency key {idempotency_key!r}"])


def ledger_error_handler(request: Request, exc: LedgerError):  # type: ignore
    if exc.status_code >= 500:
        logger.error(
            "storage failure on %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
        return _internal_error()
    return JSONResponse(status_code=exc.status_code, content=exc.payload())


def http_error_handler(request: Request, exc):  # type: ignore
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        content = {"error": "Not found"}
    else:
        content = {"error": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content)


def validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore
    details = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "query")
        details.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": FieldValidationError.label, "details": details},
    )


def server_error_handler(request: Request, exc: Exception):  # type: ignore
    logger.error("unhandled exception", exc_info=exc)
    return _internal_error()


def _internal_error() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": LedgerError.label},
    )
