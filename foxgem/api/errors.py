from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse

from foxgem.models.schemas import ErrorBody, ErrorResponse
from foxgem.services.errors import (
    AlreadyAttributed,
    InvalidCode,
    NotFound,
    ServiceError,
    StoreUnavailable,
    ValidationError,
)

SERVICE_ERROR_STATUS: dict[type[ServiceError], int] = {
    ValidationError: 400,
    InvalidCode: 400,
    NotFound: 404,
    AlreadyAttributed: 409,
    StoreUnavailable: 500,
}


class APIError(Exception):
    def __init__(
        self,
        code: str,
        message: str,
        status_code: int,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)

    @classmethod
    def from_service_error(cls, exc: ServiceError) -> "APIError":
        return cls(
            code=exc.code,
            message=str(exc),
            status_code=SERVICE_ERROR_STATUS.get(type(exc), 500),
        )

    def to_response(self) -> JSONResponse:
        payload = ErrorResponse(
            error=ErrorBody(code=self.code, message=self.message, details=self.details),
        )
        return JSONResponse(
            status_code=self.status_code,
            content=payload.model_dump(exclude_none=True),
        )
