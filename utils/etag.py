"""
Resource version tags and conditional request decisions (RFC 7232).

Tags are weak validators over a SHA-256 digest of the resource's identity and
last-modified timestamp. The decision functions treat tags as opaque: they
normalize quoting and the weak prefix, then compare strings.
"""
from __future__ import annotations

import hashlib
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Mapping, Optional, Tuple

from models.base_model import as_utc

WEAK_PREFIX = "W/"
DIGEST_LENGTH = 16
# Not hex, so no digest can ever collide with it
EMPTY_COLLECTION_TAG = 'W/"empty"'


class ReadDecision(str, Enum):
    SERVE_FRESH = "serve_fresh"
    SERVE_NOT_MODIFIED = "serve_not_modified"


class WriteDecision(str, Enum):
    PROCEED = "proceed"
    REJECT = "reject"


def _state(resource_id, updated_at: datetime) -> str:
    # naive values are UTC; microseconds keep sub-second edits distinct
    stamp = as_utc(updated_at).replace(tzinfo=None).isoformat(timespec="microseconds")
    return f"{resource_id}:{stamp}"


def _weak_tag(state: str) -> str:
    digest = hashlib.sha256(state.encode("utf-8")).hexdigest()[:DIGEST_LENGTH]
    return f'{WEAK_PREFIX}"{digest}"'


def tag_for(resource_id, updated_at: datetime) -> str:
    return _weak_tag(_state(resource_id, updated_at))


def tag_for_collection(
    items: Iterable[Tuple[object, datetime]], scope: Optional[Mapping[str, object]] = None
) -> str:
    """
    Tag for a set of (id, updated_at) pairs. Input order does not matter;
    adding, removing or touching any item changes the tag.

    `scope` describes the page the items were cut from (total, page, limit,
    filters). It is folded into the digest so that a page whose items are
    unchanged but whose total moved gets a new tag.
    """
    pairs = sorted(((str(rid), ts) for rid, ts in items), key=lambda pair: pair[0])
    entries = [_state(rid, ts) for rid, ts in pairs]
    if scope:
        entries.append("&".join(f"{key}={scope[key]}" for key in sorted(scope)))
    if not entries:
        return EMPTY_COLLECTION_TAG
    return _weak_tag("|".join(entries))


def normalize_tag(value: Optional[str]) -> Optional[str]:
    """Strip whitespace, a W/ prefix and surrounding quotes; case-fold."""
    if value is None:
        return None
    tag = value.strip()
    if tag[:2].upper() == WEAK_PREFIX:
        tag = tag[2:]
    if len(tag) >= 2 and tag.startswith('"') and tag.endswith('"'):
        tag = tag[1:-1]
    return tag.casefold() or None


def _presented_tags(header: str) -> List[str]:
    return [tag for tag in (normalize_tag(part) for part in header.split(",")) if tag]


def _matches(header: str, current_tag: str) -> bool:
    if header.strip() == "*":
        return True
    current = normalize_tag(current_tag)
    return current is not None and current in _presented_tags(header)


def handle_conditional_read(presented: Optional[str], current_tag: str) -> ReadDecision:
    """Decision for If-None-Match on GET."""
    if presented and presented.strip() and _matches(presented, current_tag):
        return ReadDecision.SERVE_NOT_MODIFIED
    return ReadDecision.SERVE_FRESH


def validate_conditional_write(presented: Optional[str], current_tag: str) -> WriteDecision:
    """
    Decision for If-Match on PUT/PATCH. Without a header the write proceeds:
    conditional writes are optional for clients.
    """
    if presented is None or not presented.strip():
        return WriteDecision.PROCEED
    if _matches(presented, current_tag):
        return WriteDecision.PROCEED
    return WriteDecision.REJECT
