"""Error kinds surfaced to API clients.

Every failure leaves the service as ``{"error": kind, "message": text}``
with a stable ``kind``; handlers in ``main`` do the translation.
"""


class AppError(Exception):
    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str = "Something went wrong"):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class ValidationFailed(AppError):
    kind = "validation_error"
    status_code = 400


class NotFound(AppError):
    kind = "not_found"
    status_code = 404


class Conflict(AppError):
    kind = "conflict"
    status_code = 409


class Unauthorized(AppError):
    kind = "unauthorized"
    status_code = 401


class StoreFailure(AppError):
    kind = "internal_error"
    status_code = 500


# status codes raised by the framework itself (HTTPException, routing)
KIND_BY_STATUS = {
    400: ValidationFailed.kind,
    401: Unauthorized.kind,
    403: "forbidden",
    404: NotFound.kind,
    405: "method_not_allowed",
    409: Conflict.kind,
    422: ValidationFailed.kind,
}
