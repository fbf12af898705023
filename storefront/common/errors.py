"""Error kinds surfaced to API callers.

Services raise these; ``app.create_app`` maps every subclass of
``StorefrontError`` to a JSON body ``{"error": code, "message": ...}``.
"""


class StorefrontError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidRequest(StorefrontError):
    status_code = 400
    code = "invalid_request"


class Unauthenticated(StorefrontError):
    status_code = 401
    code = "unauthenticated"


class Unauthorized(StorefrontError):
    status_code = 403
    code = "unauthorized"


class NotFound(StorefrontError):
    status_code = 404
    code = "not_found"


class InsufficientStock(StorefrontError):
    status_code = 409
    code = "insufficient_stock"


class InvalidState(StorefrontError):
    status_code = 409
    code = "invalid_state"


class AlreadyInitialized(StorefrontError):
    status_code = 409
    code = "already_initialized"
