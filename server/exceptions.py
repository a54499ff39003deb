"""Custom exception classes for the drive server."""


class DriveServerError(Exception):
    """
    Base exception class for all drive server errors.
    """
    pass


class SessionNotFoundError(DriveServerError):
    """
    Raised when an upload session id is unknown or already closed.
    """
    pass


class StoredFileNotFoundError(DriveServerError):
    """
    Raised when a requested file does not exist.
    """
    pass


class QuotaExceededError(DriveServerError):
    """
    Raised when a new upload would exceed the storage quota.
    """
    pass


class ChecksumMismatchError(DriveServerError):
    """
    Raised when chunk checksum verification fails.
    """
    pass


class IncompleteUploadError(DriveServerError):
    """
    Raised on completion when declared chunks or blocks are missing.
    """
    pass


class InvalidDeltaError(DriveServerError):
    """
    Raised when delta instructions cannot be applied to the base file.
    """
    pass


class SessionStateConflictError(DriveServerError):
    """
    Raised when a request does not fit the session's upload mode.
    """
    pass
