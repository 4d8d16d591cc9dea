from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class ErrorBody(BaseModel):
    message: str
    type: str
    code: str | int | None = None
    param: str | None = None

    model_config = ConfigDict(extra="allow")


class BridgeError(Exception):
    def __init__(
        self,
        *,
        status_code: int = 500,
        error_type: str = "internal_error",
        message: str,
        code: str | int | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_type = error_type
        self.message = message
        self.code = code
        self.extra = extra or {}

    def to_error_body(self) -> ErrorBody:
        payload: dict[str, Any] = {"message": self.message, "type": self.error_type}
        if self.code is not None:
            payload["code"] = self.code
        if self.extra:
            payload.update(self.extra)
        return ErrorBody.model_validate(payload)

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.to_error_body().model_dump(exclude_none=True)}


class BackendUnavailableError(BridgeError):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=502,
            error_type="backend_unavailable",
            message=f"OpenCode server is unavailable: {detail}",
        )


class BackendRequestError(BridgeError):
    def __init__(self, backend_status: int, detail: str | None = None) -> None:
        suffix = f": {detail}" if detail else ""
        super().__init__(
            status_code=502,
            error_type="backend_error",
            message=f"OpenCode request failed ({backend_status}){suffix}",
            code=backend_status,
        )
        self.backend_status = backend_status


class InvalidBackendResponseError(BridgeError):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=502,
            error_type="invalid_backend_response",
            message=f"OpenCode returned an unexpected payload: {detail}",
        )


class RequestValidationError(BridgeError):
    def __init__(self, detail: str, *, param: str | None = None) -> None:
        super().__init__(
            status_code=400,
            error_type="invalid_request_error",
            message=detail,
            extra={"param": param} if param else None,
        )


class RenderingError(Exception):
    """Raised by a part renderer when the part cannot be formatted."""


__all__ = [
    "BackendRequestError",
    "BackendUnavailableError",
    "BridgeError",
    "ErrorBody",
    "InvalidBackendResponseError",
    "RenderingError",
    "RequestValidationError",
]
