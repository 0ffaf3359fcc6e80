"""Application error taxonomy.

Each error carries the HTTP status it maps to; main.py turns them into
`{"message": ..., "errors": [...]}` responses. Row-level ingestion problems
are not errors in this sense and never reach this module.
"""

from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Base exception for all handled application failures."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        return {"message": self.message}


class ValidationError(AppError):
    """Raised for input that does not match the expected schema."""

    status_code = 400
    default_message = "Invalid request data"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_body(self) -> Dict[str, Any]:
        return {"message": self.message, "errors": self.errors}


class EmptyFile(ValidationError):
    """Raised when an upload has no header or no data rows."""

    default_message = "Uploaded file must contain a header row and at least one data row"


class UploadTooLarge(ValidationError):
    """Raised when an upload exceeds the size cap."""

    status_code = 413
    default_message = "Uploaded file is too large"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(AppError):
    status_code = 403
    default_message = "Insufficient permissions"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class InvalidOperation(AppError):
    """Raised for business-rule violations such as deleting your own account."""

    status_code = 400
    default_message = "Operation not allowed"


class StorageUnavailable(AppError):
    status_code = 500
    default_message = "Storage unavailable"


class Unknown(AppError):
    status_code = 500
