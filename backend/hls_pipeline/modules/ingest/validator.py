"""Filename contract for uploaded videos.

Uploaded objects are named ``<owner>###<title>.<ext>``. The key is checked
before anything else touches it: it ends up in ffmpeg command lines, local
paths and storage prefixes, so an unsafe key is rejected outright.
"""

import os
import re
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import unquote_plus

FILENAME_SEPARATOR = "###"

# Null bytes, control characters and parent-directory traversal
_UNSAFE_KEY_RE = re.compile(r"[\x00-\x1f]|\.\./|\.\.\\", re.IGNORECASE)

# Only alphanumerics, hyphens, underscores, periods, slashes and '#'
_ALLOWED_KEY_RE = re.compile(r"^[A-Za-z0-9\-_/.#]+$")


@dataclass(frozen=True)
class FilenameIdentity:
    """Owner and title extracted from an object key."""
    owner: str
    title: str

    @property
    def title_stem(self) -> str:
        """Title without its file extension."""
        return os.path.splitext(self.title)[0]

    def video_id(self, disambiguator: Union[int, str]) -> str:
        """Build the globally unique video ID for one pipeline run."""
        return f"{self.owner}{FILENAME_SEPARATOR}{self.title_stem}-{disambiguator}"


@dataclass(frozen=True)
class KeyValidationResult:
    """Outcome of validating an object key."""
    is_valid: bool
    identity: Optional[FilenameIdentity] = None
    reason: Optional[str] = None


def decode_object_key(raw_key: str) -> str:
    """Decode a key as delivered in storage notifications.

    Notifications encode spaces as ``+`` and everything else with percent
    escapes.
    """
    return unquote_plus(raw_key)


def validate_object_key(key: str) -> KeyValidationResult:
    """Validate a decoded object key and extract its identity.

    Rules are applied in order: unsafe characters and traversal sequences,
    the character allow-list, the separator in the final path segment.

    Args:
        key: URL-decoded object key

    Returns:
        KeyValidationResult with the identity or the rejection reason
    """
    if _UNSAFE_KEY_RE.search(key):
        return KeyValidationResult(
            is_valid=False,
            reason="key contains control characters or a path traversal sequence",
        )

    if not _ALLOWED_KEY_RE.match(key):
        return KeyValidationResult(
            is_valid=False,
            reason="key contains characters outside the allowed set",
        )

    filename = key.rsplit("/", 1)[-1]
    if FILENAME_SEPARATOR not in filename:
        return KeyValidationResult(
            is_valid=False,
            reason=f"filename '{filename}' does not match '<owner>{FILENAME_SEPARATOR}<title>'",
        )

    owner, title = filename.split(FILENAME_SEPARATOR, 1)
    if not owner or not title:
        return KeyValidationResult(
            is_valid=False,
            reason=f"filename '{filename}' has an empty owner or title",
        )

    return KeyValidationResult(
        is_valid=True,
        identity=FilenameIdentity(owner=owner, title=title),
    )


def build_output_prefix(video_id: str, root_prefix: str = "processed/") -> str:
    """Build the storage prefix all outputs of one run are written under."""
    root = root_prefix if root_prefix.endswith("/") or not root_prefix else f"{root_prefix}/"
    return f"{root}{video_id}/"
