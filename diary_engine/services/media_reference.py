"""
MediaReference parsing.

A photo slot in the database stores one string that has taken two shapes over
the life of the app:

- legacy: an absolute path (or ``file://`` URI) into a volatile OS cache or
  sandbox directory, written by early versions straight from the image picker
- canonical: ``<bucket>/<filename>`` relative to the durable documents root

``parse_reference`` is the only place that tells them apart; everything else
works on the parsed values.
"""

import enum
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Union
from urllib.parse import urlparse, unquote

FILE_URI_PREFIX = "file://"


class InvalidReferenceError(ValueError):
    """Raised when a stored string is neither a legacy nor a canonical reference."""
    pass


class Bucket(str, enum.Enum):
    """Logical media partitions under the durable root."""
    PROFILES = "profiles"
    IMAGES = "images"


@dataclass(frozen=True)
class CanonicalReference:
    """``<bucket>/<filename>`` inside durable storage."""
    bucket: Bucket
    filename: str
    
    @property
    def raw(self) -> str:
        return f"{self.bucket.value}/{self.filename}"
    
    def __str__(self) -> str:
        return self.raw


@dataclass(frozen=True)
class LegacyReference:
    """Absolute path or file URI written before canonical storage existed."""
    raw: str
    path: Path
    
    @property
    def is_uri(self) -> bool:
        return self.raw.startswith(FILE_URI_PREFIX)
    
    def __str__(self) -> str:
        return self.raw


MediaReference = Union[LegacyReference, CanonicalReference]


def path_from_file_uri(uri: str) -> Path:
    """Convert a ``file://`` URI into a filesystem path (percent-decoded)."""
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        raise InvalidReferenceError(f"Not a file URI: {uri}")
    return Path(unquote(parsed.path))


def validate_filename(filename: str) -> str:
    """
    Check that a name is safe to use as a single path component.
    
    Raises:
        InvalidReferenceError: If the name is empty, a dot entry, or contains
            separators or NUL bytes
    """
    if not filename or filename in (".", ".."):
        raise InvalidReferenceError(f"Invalid media filename: {filename!r}")
    if "/" in filename or "\\" in filename or "\x00" in filename:
        raise InvalidReferenceError(f"Invalid media filename: {filename!r}")
    return filename


def parse_reference(raw: str) -> MediaReference:
    """
    Parse a stored reference string.
    
    Args:
        raw: Value of a media slot column
    
    Returns:
        LegacyReference or CanonicalReference
    
    Raises:
        InvalidReferenceError: For empty strings, non-file URIs and relative
            paths that are not ``<bucket>/<filename>``
    """
    if raw is None or not raw.strip():
        raise InvalidReferenceError("Empty media reference")
    
    if raw.startswith(FILE_URI_PREFIX):
        return LegacyReference(raw=raw, path=path_from_file_uri(raw))
    
    if raw.startswith("/"):
        return LegacyReference(raw=raw, path=Path(raw))
    
    parts = PurePosixPath(raw).parts
    if len(parts) == 2 and "/".join(parts) == raw:
        bucket_name, filename = parts
        try:
            bucket = Bucket(bucket_name)
        except ValueError:
            raise InvalidReferenceError(f"Unknown media bucket in reference: {raw}")
        return CanonicalReference(bucket=bucket, filename=validate_filename(filename))
    
    raise InvalidReferenceError(f"Unrecognized media reference: {raw}")


def canonical_reference(bucket: Bucket, filename: str) -> CanonicalReference:
    """Build a canonical reference from its parts, validating the filename."""
    return CanonicalReference(bucket=Bucket(bucket), filename=validate_filename(filename))


def is_legacy(raw: str) -> bool:
    """True when ``raw`` parses as a legacy reference."""
    try:
        return isinstance(parse_reference(raw), LegacyReference)
    except InvalidReferenceError:
        return False
