"""
Error hierarchy for object storage operations.

Each remote step has its own error type so callers can tell which part
of the authorize / lease / upload / locate / delete chain failed without
parsing messages. Transport problems (DNS, refused connections, timeouts)
are raised as TransportError by the requester and re-wrapped by the step
that issued the call, so the original cause stays on __cause__.
"""


class StorageError(Exception):
    """Raised when storage operations fail."""
    pass


class TransportError(StorageError):
    """Network-level failure: the remote side never produced a response."""
    pass


class AuthError(StorageError):
    """Bad credentials or a malformed authorization response."""
    pass


class LeaseError(StorageError):
    """Upload URL could not be obtained for the bucket."""
    pass


class UploadError(StorageError):
    """Payload was rejected or the upload response was malformed."""
    pass


class ObjectLookupError(StorageError):
    """
    Listing the bucket failed.

    Named to avoid shadowing the builtin LookupError.
    """
    pass


class DeleteError(StorageError):
    """The remote side refused to delete a located object."""
    pass


class ConfigError(StorageError):
    """A required configuration field is missing."""
    pass
