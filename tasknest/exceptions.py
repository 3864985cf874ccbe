"""Custom exception classes for tasknest."""


class TaskNestError(Exception):
    """Base exception for tasknest errors."""
    pass


class AuthenticationError(TaskNestError):
    """Raised when sign-in fails."""
    pass


class AuthRequiredError(TaskNestError):
    """Raised when a storage call is attempted without a resolved user identity."""
    pass


class APIError(TaskNestError):
    """Raised when the backend returns an error."""
    pass


class ConfigurationError(TaskNestError):
    """Raised when required configuration is missing."""
    pass


class ValidationError(TaskNestError):
    """Raised when input validation fails."""
    pass


class NetworkError(TaskNestError):
    """Raised when network requests fail."""
    pass


class StorageError(TaskNestError):
    """Base exception for object store failures."""
    pass


class StorageWriteError(StorageError):
    """Raised when an upload to the object store fails."""
    pass


class StorageDeleteError(StorageError):
    """Raised when the object store reports a failed delete."""
    pass


class ValidationDecodeError(TaskNestError):
    """
    Raised when credential claims or a cached auth entry cannot be decoded.

    Never leaves the liveness controller: callers collapse it into
    "invalid" or "corrupt".
    """
    pass


class InvalidStateError(TaskNestError):
    """Raised when an edit session operation is not allowed in its current state."""
    pass
