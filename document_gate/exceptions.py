"""
Custom exceptions for the document gate.

Every store adapter raises these exceptions so the access controller
and the admin console can handle failures the same way regardless of
which backend is configured.
"""


class DocumentGateError(Exception):
    """Base exception for all document gate errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ExternalStoreError(DocumentGateError):
    """Raised when a call to a hosted store (records or objects) fails."""

    def __init__(self, operation: str, cause: Exception | None = None, path: str | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Store error during {operation}"
        if path:
            message += f": {path}"
        if cause:
            message += f" ({cause})"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class AccessLogWriteError(ExternalStoreError):
    """Raised when an access record could not be appended."""

    def __init__(self, email: str, cause: Exception | None = None):
        super().__init__("insert_access_record", cause)
        self.details["email"] = email
        self.email = email


class DocumentLookupError(ExternalStoreError):
    """Raised when document metadata could not be read or written."""

    def __init__(self, operation: str = "latest_document", cause: Exception | None = None):
        super().__init__(operation, cause)


class SignedLinkError(ExternalStoreError):
    """Raised when the object store refuses to sign a URL."""

    def __init__(self, path: str, cause: Exception | None = None):
        super().__init__("create_signed_url", cause, path=path)


class StorageIOError(DocumentGateError):
    """Raised when a local file operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class StorageConnectionError(DocumentGateError):
    """Raised when connection to a remote store fails.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class AuthenticationError(DocumentGateError):
    """Raised when authentication against the hosted provider fails."""

    def __init__(self, endpoint: str, reason: str | None = None):
        details = {"endpoint": endpoint}
        if reason:
            details["reason"] = reason
        super().__init__(f"Authentication failed for {endpoint}", details)
        self.endpoint = endpoint
        self.reason = reason


class AuthenticationRequiredError(DocumentGateError):
    """Raised when an operation needs a signed-in admin session."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class PermissionDeniedError(DocumentGateError):
    """Signed-in user is not allowed to perform the operation."""

    def __init__(self, email: str, reason: str):
        details = {"email": email, "reason": reason}
        super().__init__(f"Permission denied for {email}: {reason}", details)
        self.email = email
        self.reason = reason


class ValidationError(DocumentGateError):
    """Raised when input validation fails."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value
