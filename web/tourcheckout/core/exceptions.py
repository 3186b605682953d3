from typing import Any, Optional, Dict, List


class BaseError(Exception):
    """Base exception class for the application"""

    def __init__(
        self,
        message: str = "An error occurred",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(BaseError):
    """Exception raised when an entity is not found"""

    def __init__(self, entity: str, id: Any):
        super().__init__(
            message=f"{entity} with id {id} not found",
            status_code=404,
            details={"entity": entity, "id": id}
        )


class ValidationError(BaseError):
    """Exception raised for local input validation errors.

    Carries every failure so the client can show them inline at once.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None
    ):
        details: Dict[str, Any] = {"field": field} if field else {}
        if errors:
            details["errors"] = errors
        self.errors = errors or []
        super().__init__(
            message=message,
            status_code=400,
            details=details
        )


class VoucherInapplicableError(BaseError):
    """Voucher can't be used for this order; checkout continues without it"""

    def __init__(self, code: str, reason: str):
        self.code = code
        self.reason = reason
        super().__init__(
            message=f"Voucher {code} is not applicable: {reason}",
            status_code=422,
            details={"voucher_code": code, "reason": reason}
        )


class StateConflictError(BaseError):
    """Server-reported booking status does not permit the requested step"""

    def __init__(self, message: str, status: Optional[str] = None, **extra: Any):
        details: Dict[str, Any] = {"status": status} if status else {}
        details.update(extra)
        super().__init__(
            message=message,
            status_code=409,
            details=details
        )


class NetworkError(BaseError):
    """Transport-level failure talking to the marketplace backend"""

    retryable = True

    def __init__(self, service: str, message: str):
        super().__init__(
            message=f"Network error: {message}",
            status_code=503,
            details={"service": service, "retryable": True}
        )


class ExternalServiceError(BaseError):
    """Exception raised when external service rejects a request"""

    def __init__(self, service: str, message: str, upstream_status: Optional[int] = None):
        details: Dict[str, Any] = {"service": service}
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        super().__init__(
            message=f"External service error: {message}",
            status_code=502,
            details=details
        )


class DataIntegrityError(BaseError):
    """Backend returned figures that break a known invariant"""

    def __init__(self, message: str, **details: Any):
        super().__init__(
            message=message,
            status_code=502,
            details=details
        )


class StorageError(BaseError):
    """Pending-booking cache failure. Callers treat it as a cache miss."""

    def __init__(self, message: str):
        super().__init__(message=message, status_code=500)
