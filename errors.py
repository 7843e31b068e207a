"""Error taxonomy shared by the services and the HTTP layer.

Each error carries a stable ``code`` and the HTTP status the API answers with.
Auth failures keep their message generic so no internal detail leaks.
"""


class ZaaNetError(Exception):
    code = "error"
    status = 500
    default_message = "Request failed"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(ZaaNetError):
    code = "validation_error"
    status = 400
    default_message = "Invalid request"


class NotFoundError(ZaaNetError):
    code = "not_found"
    status = 404
    default_message = "Not found"


class ConflictError(ZaaNetError):
    code = "conflict"
    status = 409
    default_message = "Already exists"


class InvalidTokenError(ZaaNetError):
    code = "invalid_token"
    status = 401
    default_message = "Invalid token"


class SessionExpiredError(ZaaNetError):
    code = "expired"
    status = 401
    default_message = "Session expired"


class UpstreamError(ZaaNetError):
    code = "upstream_error"
    status = 500
    default_message = "Internal server error"
