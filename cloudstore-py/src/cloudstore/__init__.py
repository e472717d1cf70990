"""
cloudstore - object storage client with streaming uploads
"""

__version__ = "1.0.0"

from .client import StorageClient
from .context import Context, ObjectInserter
from .writer import ObjectWriter, Pipe, ContentTypedReader
from .convert import (
    convert_time,
    to_domain_object,
    to_domain_bucket,
    to_wire_object,
    query_params,
    to_object_list,
)
from .models import (
    ACLRole,
    ACLRule,
    ALL_USERS,
    ALL_AUTHENTICATED_USERS,
    Owner,
    StoredObject,
    Bucket,
    Query,
    ObjectList,
    ZERO_TIME,
)
from .error import (
    StorageException,
    BucketNotFoundException,
    ObjectNotFoundException,
    AuthenticationException,
    AccessDeniedException,
    ServerException,
    StreamClosedError,
    ContextCancelledException,
    DeadlineExceededException,
)

__all__ = [
    "StorageClient",
    "Context",
    "ObjectInserter",
    "ObjectWriter",
    "Pipe",
    "ContentTypedReader",
    "convert_time",
    "to_domain_object",
    "to_domain_bucket",
    "to_wire_object",
    "query_params",
    "to_object_list",
    "ACLRole",
    "ACLRule",
    "ALL_USERS",
    "ALL_AUTHENTICATED_USERS",
    "Owner",
    "StoredObject",
    "Bucket",
    "Query",
    "ObjectList",
    "ZERO_TIME",
    "StorageException",
    "BucketNotFoundException",
    "ObjectNotFoundException",
    "AuthenticationException",
    "AccessDeniedException",
    "ServerException",
    "StreamClosedError",
    "ContextCancelledException",
    "DeadlineExceededException",
]
