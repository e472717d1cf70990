"""
Data models for cloudstore

Every model is an immutable snapshot. Values built from a service response
are never updated in place; a new upload produces a new StoredObject.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from types import MappingProxyType
from typing import Optional, Mapping, Tuple, Union


# Value of every timestamp that is absent or could not be parsed.
ZERO_TIME = datetime.min.replace(tzinfo=UTC)

ALL_USERS = "allUsers"
ALL_AUTHENTICATED_USERS = "allAuthenticatedUsers"


class ACLRole(str, Enum):
    """Permission level granted by an access control rule."""
    OWNER = "OWNER"
    READER = "READER"
    WRITER = "WRITER"


@dataclass(frozen=True)
class ACLRule:
    """
    A single access control entry.

    entity identifies the principal, e.g. "user-<email>", "group-<id>",
    "domain-<domain>", ALL_USERS or ALL_AUTHENTICATED_USERS. Roles the
    client does not know are kept as plain strings.
    """
    entity: str
    role: Union[ACLRole, str]


@dataclass(frozen=True)
class Owner:
    """Owner of an object, always in the form "user-<userId>"."""
    entity: str = ""


@dataclass(frozen=True)
class StoredObject:
    """
    Represents an object stored in a bucket.

    Only bucket, name, cache_control, content_type, content_encoding,
    content_language, acl and metadata may be set by a client. The other
    fields are read-only: they are filled in from service responses and
    never sent back on a write.
    """
    bucket: str = ""
    name: str = ""
    cache_control: str = ""
    content_type: str = ""
    content_language: str = ""
    content_encoding: str = ""
    acl: Tuple[ACLRule, ...] = ()
    # Copied into a read-only mapping on construction.
    metadata: Mapping[str, str] = field(default_factory=dict, hash=False)

    # Read-only.
    owner: Owner = field(default_factory=Owner)
    size: int = 0
    md5: bytes = b""
    crc32c: bytes = b""
    media_link: str = ""
    generation: int = 0
    metageneration: int = 0
    storage_class: str = ""
    created: datetime = ZERO_TIME
    updated: datetime = ZERO_TIME
    # Set if and only if this generation of the object has been deleted.
    deleted: datetime = ZERO_TIME

    def __post_init__(self):
        object.__setattr__(self, "acl", tuple(self.acl))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def is_deleted(self) -> bool:
        return self.deleted != ZERO_TIME


@dataclass(frozen=True)
class Bucket:
    """Represents a bucket."""
    name: str
    acl: Tuple[ACLRule, ...] = ()
    # Applied to new objects that are created without an explicit ACL.
    default_object_acl: Tuple[ACLRule, ...] = ()
    location: str = ""
    storage_class: str = ""
    # Read-only.
    metageneration: int = 0
    created: datetime = ZERO_TIME

    def __post_init__(self):
        object.__setattr__(self, "acl", tuple(self.acl))
        object.__setattr__(self, "default_object_acl", tuple(self.default_object_acl))


@dataclass(frozen=True)
class Query:
    """
    Filters the objects returned by a bucket listing.

    With a delimiter, names that contain it after the prefix are folded
    into ObjectList.prefixes instead of being listed. max_results is a
    page size hint; zero or less uses the service default.
    """
    prefix: str = ""
    delimiter: str = ""
    versions: bool = False
    cursor: Optional[str] = None
    max_results: int = 0


@dataclass(frozen=True)
class ObjectList:
    """One page of a bucket listing."""
    results: Tuple[StoredObject, ...] = ()
    prefixes: Tuple[str, ...] = ()
    # Query for the following page, None once the listing is exhausted.
    next: Optional[Query] = None
