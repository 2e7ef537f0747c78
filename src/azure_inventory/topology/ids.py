from __future__ import annotations

import re
from typing import Optional

_ESCAPE_RE = re.compile(r"[^a-z0-9]")
_SUBNET_SUFFIX_RE = re.compile(r"/subnets/[^/]+/?$", re.IGNORECASE)


def _escape(match: re.Match) -> str:
    return "".join(f"_{b:02x}" for b in match.group(0).encode("utf-8"))


def sanitize_id(resource_id: str, *, prefix: str) -> str:
    """
    Derive a deterministic key from an ARM resource id.

    ARM ids are case-insensitive, so the id is case-folded first. Every other
    character outside [a-z0-9] is replaced by its UTF-8 bytes as `_xx` hex
    escapes, which keeps the mapping one-to-one: `web-pip1` and `webpip1`
    never share a key. The prefix keeps keys of different resource kinds
    apart (a NIC node and a public IP claim never collide).
    """
    return f"{prefix}{_ESCAPE_RE.sub(_escape, (resource_id or '').lower())}"


def normalize_resource_id(resource_id: Optional[str]) -> str:
    """Lookup key for per-subscription indexes."""
    return (resource_id or "").strip().rstrip("/").lower()


def vnet_id_from_subnet_id(subnet_id: Optional[str]) -> Optional[str]:
    """
    Strip the trailing /subnets/<name> segment. Returns None for ids that do
    not reference a subnet.
    """
    if not subnet_id:
        return None
    stripped = _SUBNET_SUFFIX_RE.sub("", subnet_id.strip())
    if stripped == subnet_id.strip():
        return None
    return stripped


def last_segment(resource_id: Optional[str]) -> str:
    if not resource_id:
        return ""
    return resource_id.rstrip("/").rsplit("/", 1)[-1]


def resource_group_from_id(resource_id: Optional[str]) -> str:
    if not resource_id:
        return ""
    parts = resource_id.strip("/").split("/")
    for i, part in enumerate(parts[:-1]):
        if part.lower() == "resourcegroups":
            return parts[i + 1]
    return ""


def parent_kind(resource_id: Optional[str]) -> str:
    """
    Return the lower-cased top-level resource type segment of an ARM id,
    e.g. 'networkinterfaces' for a NIC ipConfiguration id.
    """
    if not resource_id:
        return ""
    parts = resource_id.strip("/").split("/")
    for i, part in enumerate(parts[:-1]):
        if part.lower() == "providers" and i + 2 < len(parts):
            return parts[i + 2].lower()
    return ""
