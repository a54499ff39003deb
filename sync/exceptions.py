"""Custom exception classes for the sync engine."""


class SyncError(Exception):
    """
    Base exception class for all upload and delta-sync errors.
    """
    pass


class ReadError(SyncError):
    """
    Raised when the local byte source cannot be fully read.
    """
    pass


class SourceChangedError(SyncError):
    """
    Raised when the file changed between signature computation and block extraction.
    """
    pass


class SignatureUnavailableError(SyncError):
    """
    Raised when the remote store cannot provide a signature for a file.

    Never fatal: the uploader falls back to a full upload.
    """
    pass


class FileLookupError(SyncError):
    """
    Raised when the remote store cannot be asked for a stored version by name.

    Never fatal: the uploader treats the file as new.
    """
    pass


class SessionOpenError(SyncError):
    """
    Raised when the remote store refuses to open an upload session.
    """
    pass


class TransmissionError(SyncError):
    """
    Raised when a chunk or delta payload is not acknowledged.
    """
    pass


class FinalizeError(SyncError):
    """
    Raised when the remote store rejects the completion of a session.
    """
    pass


class UploadCancelledError(SyncError):
    """
    Raised when the caller abandons a session before it is finalized.
    """
    pass


class InvalidSessionStateError(SyncError):
    """
    Raised when an operation is not permitted in the session's current state.
    """
    pass


class DeltaApplyError(SyncError):
    """
    Raised when delta instructions cannot be replayed against a base file.
    """
    pass
