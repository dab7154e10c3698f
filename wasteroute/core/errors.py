# wasteroute/core/errors.py
from typing import Any, Dict, List, Optional


class ServiceError(Exception):
    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        self.detail = detail or self.default_detail
        self.errors = errors or []
        super().__init__(self.detail)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.detail}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(ServiceError):
    status_code = 400
    default_detail = "Validation failed"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors=[{"field": field, "message": message}])


class AuthenticationError(ServiceError):
    status_code = 401
    default_detail = "Could not validate credentials"


class AuthorizationError(ServiceError):
    status_code = 403
    default_detail = "Not enough permissions"


class NotFoundError(ServiceError):
    status_code = 404
    default_detail = "Not found"


class ConflictError(ServiceError):
    status_code = 409
    default_detail = "Conflict"


class InternalError(ServiceError):
    status_code = 500
