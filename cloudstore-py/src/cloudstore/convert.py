"""
Conversion between wire resources and cloudstore models

Wire resources are the JSON-decoded dicts exchanged with the service. Fields
the models do not know about are dropped.
"""

import base64
import binascii
import logging
import re
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .models import (
    ACLRole,
    ACLRule,
    Bucket,
    ObjectList,
    Owner,
    Query,
    StoredObject,
    ZERO_TIME,
)

logger = logging.getLogger(__name__)

# Full RFC 3339 date-time: "T" separator, seconds and a zone are required.
_RFC3339 = re.compile(
    r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})",
    re.ASCII,
)


def convert_time(text: Optional[str]) -> datetime:
    """
    Parse an RFC 3339 timestamp.

    Empty, malformed or zone-less text silently yields ZERO_TIME instead of
    raising. This leniency is kept for compatibility with existing callers
    even though it can hide corrupt data.
    """
    if not text:
        return ZERO_TIME
    if not isinstance(text, str) or not _RFC3339.fullmatch(text):
        logger.debug("[cloudstore][Convert] unparseable timestamp=%r", text)
        return ZERO_TIME
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.debug("[cloudstore][Convert] unparseable timestamp=%r", text)
        return ZERO_TIME


def _decode_hash(text: Optional[str]) -> bytes:
    if not text:
        return b""
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        logger.debug("[cloudstore][Convert] undecodable hash=%r", text)
        return b""


def _to_int(value: Any) -> int:
    # int64/uint64 counters are sent as decimal strings.
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _to_role(value: str):
    try:
        return ACLRole(value)
    except ValueError:
        return value


def _to_acl(rules: Optional[Iterable[Mapping[str, Any]]]) -> Tuple[ACLRule, ...]:
    return tuple(
        ACLRule(entity=rule.get("entity", ""), role=_to_role(rule.get("role", "")))
        for rule in rules or ()
    )


def _from_acl(rules: Iterable[ACLRule]) -> list:
    return [
        {"entity": rule.entity, "role": getattr(rule.role, "value", rule.role)}
        for rule in rules
    ]


def to_domain_object(raw: Optional[Mapping[str, Any]]) -> Optional[StoredObject]:
    """Convert an object resource. None maps to None."""
    if raw is None:
        return None
    return StoredObject(
        bucket=raw.get("bucket", ""),
        name=raw.get("name", ""),
        cache_control=raw.get("cacheControl", ""),
        content_type=raw.get("contentType", ""),
        content_language=raw.get("contentLanguage", ""),
        content_encoding=raw.get("contentEncoding", ""),
        acl=_to_acl(raw.get("acl")),
        metadata=dict(raw.get("metadata") or {}),
        owner=Owner(entity=(raw.get("owner") or {}).get("entity", "")),
        size=_to_int(raw.get("size")),
        md5=_decode_hash(raw.get("md5Hash")),
        crc32c=_decode_hash(raw.get("crc32c")),
        media_link=raw.get("mediaLink", ""),
        generation=_to_int(raw.get("generation")),
        metageneration=_to_int(raw.get("metageneration")),
        storage_class=raw.get("storageClass", ""),
        created=convert_time(raw.get("timeCreated")),
        updated=convert_time(raw.get("updated")),
        deleted=convert_time(raw.get("timeDeleted")),
    )


def to_domain_bucket(raw: Optional[Mapping[str, Any]]) -> Optional[Bucket]:
    """Convert a bucket resource. None maps to None."""
    if raw is None:
        return None
    return Bucket(
        name=raw.get("name", ""),
        acl=_to_acl(raw.get("acl")),
        default_object_acl=_to_acl(raw.get("defaultObjectAcl")),
        location=raw.get("location", ""),
        storage_class=raw.get("storageClass", ""),
        metageneration=_to_int(raw.get("metageneration")),
        created=convert_time(raw.get("timeCreated")),
    )


def to_wire_object(obj: StoredObject) -> Dict[str, Any]:
    """
    Build the object resource sent on a write.

    Only client-settable fields are included and empty ones are left out;
    read-only fields are never sent.
    """
    fields = {
        "bucket": obj.bucket,
        "name": obj.name,
        "cacheControl": obj.cache_control,
        "contentType": obj.content_type,
        "contentEncoding": obj.content_encoding,
        "contentLanguage": obj.content_language,
        "acl": _from_acl(obj.acl),
        "metadata": dict(obj.metadata),
    }
    return {key: value for key, value in fields.items() if value}


def query_params(query: Optional[Query]) -> Dict[str, str]:
    """Translate a Query into list request parameters."""
    params: Dict[str, str] = {}
    if query is None:
        return params
    if query.prefix:
        params["prefix"] = query.prefix
    if query.delimiter:
        params["delimiter"] = query.delimiter
    if query.versions:
        params["versions"] = "true"
    if query.cursor:
        params["pageToken"] = query.cursor
    if query.max_results > 0:
        params["maxResults"] = str(query.max_results)
    return params


def to_object_list(raw: Mapping[str, Any], query: Optional[Query] = None) -> ObjectList:
    """
    Convert an objects list response.

    When the service returns a page token, the continuation query repeats
    the original filters with the cursor set to that token.
    """
    token = raw.get("nextPageToken")
    next_query = None
    if token:
        next_query = replace(query or Query(), cursor=token)
    return ObjectList(
        results=tuple(to_domain_object(item) for item in raw.get("items") or ()),
        prefixes=tuple(raw.get("prefixes") or ()),
        next=next_query,
    )
