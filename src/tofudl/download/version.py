"""
Version Model for the tofudl Download Subsystem

This module provides version parsing, ordering and stability filtering, plus
the codec for the API listing document shared by the live downloader, the
cache and the mirror.
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from tofudl.constants import VERSION_REGEX_PATTERN
from tofudl.exceptions import (
    InvalidOptionsError,
    InvalidVersionError,
    RequestFailedError,
    ValidationError,
)
from tofudl.log_utils import logger

_VERSION_RX = re.compile(VERSION_REGEX_PATTERN)


class Stability(Enum):
    """
    Stability tier of a version, ordered alpha < beta < rc < stable.

    Used both as the result of parsing a version and as a minimum-acceptance
    filter when listing or downloading.
    """

    ALPHA = "alpha"
    BETA = "beta"
    RC = "rc"
    STABLE = ""

    @property
    def rank(self) -> int:
        """Numeric rank for comparisons; stable is highest."""
        return _STABILITY_RANKS[self]

    def matches(self, version: "Version") -> bool:
        """Return True if `version` is at least as stable as this tier."""
        return version.stability.rank >= self.rank

    @classmethod
    def parse(cls, value: Optional[str]) -> "Stability":
        """
        Parse a stability name.

        Accepts "alpha", "beta", "rc", and "stable" or an empty string for stable.

        Raises:
            InvalidOptionsError: If the value is not a known stability.
        """
        normalized = (value or "").strip().lower()
        if normalized == "stable":
            return cls.STABLE
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidOptionsError(f"invalid stability value: {value}") from None

    def __str__(self) -> str:
        return self.value or "stable"


_STABILITY_RANKS = {
    Stability.ALPHA: -3,
    Stability.BETA: -2,
    Stability.RC: -1,
    Stability.STABLE: 0,
}


@dataclass(frozen=True)
class Version:
    """
    A validated version identifier: MAJOR.MINOR.PATCH with an optional
    -alphaN, -betaN or -rcN suffix.

    Equality is equality of the raw string. Ordering compares
    (major, minor, patch, stability rank, stability version), where a version
    without a suffix has the highest stability rank.
    """

    raw: str
    major: int = field(init=False, compare=False, repr=False)
    minor: int = field(init=False, compare=False, repr=False)
    patch: int = field(init=False, compare=False, repr=False)
    stability: Stability = field(init=False, compare=False, repr=False)
    stability_version: int = field(init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.raw, str):
            raise InvalidVersionError(str(self.raw))
        match = _VERSION_RX.fullmatch(self.raw)
        if not match:
            raise InvalidVersionError(self.raw)

        stability_version = match.group("stability_version")
        object.__setattr__(self, "major", int(match.group("major")))
        object.__setattr__(self, "minor", int(match.group("minor")))
        object.__setattr__(self, "patch", int(match.group("patch")))
        object.__setattr__(
            self, "stability", Stability(match.group("stability") or "")
        )
        object.__setattr__(
            self,
            "stability_version",
            int(stability_version) if stability_version else -1,
        )

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """Return True if `value` matches the version grammar."""
        return isinstance(value, str) and _VERSION_RX.fullmatch(value) is not None

    def sort_key(self) -> Tuple[int, int, int, int, int]:
        return (
            self.major,
            self.minor,
            self.patch,
            self.stability.rank,
            self.stability_version,
        )

    def compare(self, other: "Version") -> int:
        """
        Compare two versions.

        Returns:
            int: 1 if this version is newer than `other`, -1 if older, 0 otherwise.
        """
        mine, theirs = self.sort_key(), other.sort_key()
        if mine > theirs:
            return 1
        if mine < theirs:
            return -1
        return 0

    def matches(self, min_stability: Stability) -> bool:
        """Return True if this version's stability is at least `min_stability`."""
        return min_stability.matches(self)

    def __lt__(self, other: "Version") -> bool:
        return self.compare(other) < 0

    def __le__(self, other: "Version") -> bool:
        return self.compare(other) <= 0

    def __gt__(self, other: "Version") -> bool:
        return self.compare(other) > 0

    def __ge__(self, other: "Version") -> bool:
        return self.compare(other) >= 0

    def __str__(self) -> str:
        return self.raw


@dataclass
class VersionWithArtifacts:
    """A version and the ordered list of artifact file names published for it."""

    id: Version
    """The version identifier"""

    files: List[str] = field(default_factory=list)
    """Artifact file names, in publication order"""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VersionWithArtifacts":
        """
        Build an entry from a decoded API document item.

        Raises:
            InvalidVersionError: If the "id" field is not a valid version.
            ValidationError: If the item is not an object or "files" is not a list of names.
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Malformed version entry: {data!r}", value=repr(data))
        version = Version(data.get("id"))
        files = data.get("files")
        if files is None:
            files = []
        if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
            raise ValidationError(
                f"Malformed file list for version {version}: {files!r}",
                value=repr(files),
            )
        return cls(id=version, files=list(files))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": str(self.id), "files": list(self.files)}


def sort_versions_descending(
    versions: Iterable[VersionWithArtifacts],
) -> List[VersionWithArtifacts]:
    """
    Sort a listing newest first.

    sorted() is stable, so entries that compare equal keep the server order.
    """
    return sorted(versions, key=lambda v: v.id.sort_key(), reverse=True)


def filter_versions(
    versions: Iterable[VersionWithArtifacts],
    min_stability: Optional[Stability] = None,
) -> List[VersionWithArtifacts]:
    """Keep only versions meeting the minimum stability, if one is given."""
    if min_stability is None:
        return list(versions)
    return [v for v in versions if min_stability.matches(v.id)]


def parse_api_document(
    body: bytes, min_stability: Optional[Stability] = None, strict: bool = False
) -> List[VersionWithArtifacts]:
    """
    Decode the API listing document into sorted, filtered versions.

    Malformed version entries are logged and skipped unless `strict` is set.

    Parameters:
        body (bytes): JSON document of the form {"versions": [{"id": ..., "files": [...]}]}.
        min_stability (Optional[Stability]): Optional minimum stability filter.
        strict (bool): Raise on the first malformed entry instead of skipping it.

    Returns:
        List[VersionWithArtifacts]: Matching versions sorted newest first.

    Raises:
        RequestFailedError: If the document cannot be decoded.
        ValidationError: If `strict` is set and an entry is malformed.
    """
    try:
        data = json.loads(body)
    except (ValueError, TypeError, UnicodeDecodeError) as e:
        raise RequestFailedError(
            f"failed to decode JSON response from API endpoint ({e})"
        ) from e

    if not isinstance(data, dict) or not isinstance(data.get("versions", []), list):
        raise RequestFailedError(
            "failed to decode JSON response from API endpoint (unexpected structure)"
        )

    versions: List[VersionWithArtifacts] = []
    for item in data.get("versions") or []:
        try:
            versions.append(VersionWithArtifacts.from_dict(item))
        except ValidationError as e:
            if strict:
                raise
            logger.warning(f"Ignoring version entry from API listing: {e}")

    return sort_versions_descending(filter_versions(versions, min_stability))


def encode_api_document(versions: Iterable[VersionWithArtifacts]) -> bytes:
    """Encode versions into the API listing document."""
    return json.dumps({"versions": [v.to_dict() for v in versions]}).encode("utf-8")
