"""Small input helpers shared by commands."""

from __future__ import annotations

import re
import uuid

from .client import ReSimError

BRANCH_TYPES = ("RELEASE", "MAIN", "CHANGE_REQUEST")

# [registry[:port]/]repository[:tag][@digest], with a tag or a digest required.
_IMAGE_URI = re.compile(
    r"^(?:(?P<registry>[a-zA-Z0-9.-]+(?::[0-9]+)?)/)?"
    r"(?P<repository>[a-z0-9]+(?:[._-]+[a-z0-9]+)*(?:/[a-z0-9]+(?:[._-]+[a-z0-9]+)*)*)"
    r"(?::(?P<tag>[\w][\w.-]{0,127}))?"
    r"(?:@(?P<digest>[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}))?$"
)


def parse_uuid(value: str | None, what: str) -> str:
    try:
        parsed = uuid.UUID(value or "")
    except ValueError as exc:
        raise ReSimError("VALIDATION", f"unable to parse {what}: {value!r}", 0) from exc
    if parsed.int == 0:
        raise ReSimError("VALIDATION", f"empty {what}", 0)
    return str(parsed)


def validate_branch_type(value: str | None) -> str:
    if value not in BRANCH_TYPES:
        raise ReSimError("VALIDATION", f"invalid branch type: {value!r} (expected one of {', '.join(BRANCH_TYPES)})", 0)
    return value


def default_branch_type(branch_name: str) -> str:
    if branch_name in ("main", "master"):
        return "MAIN"
    return "CHANGE_REQUEST"


def validate_image_uri(uri: str) -> str:
    match = _IMAGE_URI.match(uri or "")
    if match is None or not (match.group("tag") or match.group("digest")):
        raise ReSimError(
            "VALIDATION",
            "failed to parse the image URI - it must be a valid docker image URI, including tag or digest",
            0,
        )
    return uri


def require(value: str | None, message: str) -> str:
    if not value:
        raise ReSimError("VALIDATION", message, 0)
    return value
