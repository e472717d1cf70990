"""
Exception classes for cloudstore
"""


class StorageException(Exception):
    """
    Base exception for all cloudstore errors.
    """

    def __init__(self, message: str, status_code: int = None, error_code: str = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class BucketNotFoundException(StorageException):
    """Thrown when a bucket is not found."""

    def __init__(self, bucket_name: str):
        super().__init__(
            f"Bucket '{bucket_name}' not found.",
            status_code=404,
            error_code="notFound"
        )


class ObjectNotFoundException(StorageException):
    """Thrown when an object is not found."""

    def __init__(self, bucket_name: str, object_name: str):
        super().__init__(
            f"Object '{object_name}' not found in bucket '{bucket_name}'.",
            status_code=404,
            error_code="notFound"
        )


class AuthenticationException(StorageException):
    """Thrown when the service rejects the credentials."""

    def __init__(self, message: str):
        super().__init__(
            message,
            status_code=401,
            error_code="authError"
        )


class AccessDeniedException(StorageException):
    """Thrown when access is denied."""

    def __init__(self, message: str):
        super().__init__(
            message,
            status_code=403,
            error_code="forbidden"
        )


class ServerException(StorageException):
    """Thrown when the server returns an error."""

    def __init__(self, message: str, status_code: int, error_code: str = None):
        super().__init__(message, status_code, error_code)


class StreamClosedError(StorageException):
    """
    Thrown by an upload pipe when the other end has gone away.

    This is a local error: it describes the in-process pipe between the
    writer and its background upload, never the remote call itself.
    """

    def __init__(self, message: str = "write on closed pipe"):
        super().__init__(message)


class ContextCancelledException(StorageException):
    """Thrown when a call is abandoned because its context was cancelled."""

    def __init__(self, message: str = "context cancelled"):
        super().__init__(message)


class DeadlineExceededException(StorageException):
    """Thrown when a call runs past its context deadline."""

    def __init__(self, timeout: float):
        super().__init__(f"Context deadline of {timeout}s exceeded.")
        self.timeout = timeout
