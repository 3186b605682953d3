from .base import BaseService, IService, market_today, parse_timezone
from .exceptions import (
    BaseError,
    NotFoundError,
    ValidationError,
    VoucherInapplicableError,
    StateConflictError,
    NetworkError,
    ExternalServiceError,
    DataIntegrityError,
    StorageError
)
from .config import Settings, get_settings

__all__ = [
    # Base classes
    "BaseService",
    "IService",
    "market_today",
    "parse_timezone",

    # Exceptions
    "BaseError",
    "NotFoundError",
    "ValidationError",
    "VoucherInapplicableError",
    "StateConflictError",
    "NetworkError",
    "ExternalServiceError",
    "DataIntegrityError",
    "StorageError",

    # Config
    "Settings",
    "get_settings"
]
