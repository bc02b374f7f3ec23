"""
Nightly Builds

Nightly builds are published outside the versioned API listing, under a
date-based path, with a checksum manifest but no detached signature.
"""

import json
import re
from dataclasses import dataclass, field
from typing import List, Optional

import requests

from tofudl.constants import (
    ARCHIVE_EXTENSION,
    MAXIMUM_UNCOMPRESSED_FILE_SIZE,
    NIGHTLY_ARTIFACT_PREFIX,
    NIGHTLY_BASE_URL,
    NIGHTLY_ID_PATTERN,
    NIGHTLY_LATEST_METADATA_URL,
    SUMS_FILE_SUFFIX,
)
from tofudl.exceptions import InvalidOptionsError, RequestFailedError
from tofudl.log_utils import logger
from tofudl.utils import http_get

from .targets import Architecture, Platform
from .verification import extract_binary_from_tar_gz, verify_artifact_checksum_only

_NIGHTLY_ID_RX = re.compile(NIGHTLY_ID_PATTERN)


@dataclass(frozen=True)
class NightlyID:
    """Identifier of a nightly build in the form YYYYMMDD-<10 hex digits>."""

    raw: str

    def __post_init__(self) -> None:
        if not isinstance(self.raw, str) or not _NIGHTLY_ID_RX.fullmatch(self.raw):
            raise InvalidOptionsError(
                f"nightly build id {self.raw!r} does not match required format "
                "YYYYMMDD-XXXXXXXXXX"
            )

    @classmethod
    def from_parts(cls, build_date: str, commit: str) -> "NightlyID":
        return cls(f"{build_date}-{commit}")

    @property
    def date(self) -> str:
        """The build date part (YYYYMMDD)."""
        return self.raw.split("-", 1)[0]

    def artifact_name(self, platform: Platform, architecture: Architecture) -> str:
        return (
            f"{NIGHTLY_ARTIFACT_PREFIX}{self.raw}_{platform.value}_"
            f"{architecture.value}{ARCHIVE_EXTENSION}"
        )

    @property
    def sums_file_name(self) -> str:
        return f"{NIGHTLY_ARTIFACT_PREFIX}{self.raw}{SUMS_FILE_SUFFIX}"

    def url_for(self, file_name: str, base_url: str = NIGHTLY_BASE_URL) -> str:
        return f"{base_url.rstrip('/')}/nightlies/{self.date}/{file_name}"

    def __str__(self) -> str:
        return self.raw


@dataclass
class NightlyMetadata:
    """Description of the most recent nightly build."""

    date: str
    commit: str
    version: str = ""
    path: str = ""
    artifacts: List[str] = field(default_factory=list)

    @property
    def nightly_id(self) -> NightlyID:
        return NightlyID.from_parts(self.date, self.commit)


def fetch_latest_nightly_metadata(
    session: requests.Session,
    metadata_url: str = NIGHTLY_LATEST_METADATA_URL,
    timeout: Optional[float] = None,
) -> NightlyMetadata:
    """
    Fetch and decode the latest nightly metadata document.

    Raises:
        RequestFailedError: If the request fails or the document cannot be parsed.
    """
    body = http_get(session, metadata_url, timeout=timeout)
    try:
        data = json.loads(body)
        return NightlyMetadata(
            date=str(data["date"]),
            commit=str(data["commit"]),
            version=str(data.get("version", "")),
            path=str(data.get("path", "")),
            artifacts=list(data.get("artifacts") or []),
        )
    except (ValueError, KeyError, TypeError) as e:
        raise RequestFailedError(
            f"failed to parse nightly metadata ({e})", url=metadata_url
        ) from e


def download_nightly_build(
    session: requests.Session,
    platform: Platform = Platform.AUTO,
    architecture: Architecture = Architecture.AUTO,
    nightly_id: Optional[NightlyID] = None,
    timeout: Optional[float] = None,
    max_size: int = MAXIMUM_UNCOMPRESSED_FILE_SIZE,
    base_url: str = NIGHTLY_BASE_URL,
) -> bytes:
    """
    Download, checksum-verify and extract a nightly build.

    Parameters:
        session (requests.Session): Session used for all requests.
        platform (Platform): Target platform; AUTO detects the host.
        architecture (Architecture): Target architecture; AUTO detects the host.
        nightly_id (Optional[NightlyID]): Build to fetch; the latest build when omitted.
        timeout (Optional[float]): Per-request timeout in seconds.
        max_size (int): Upper bound for the extracted binary.
        base_url (str): Root of the nightly distribution site.

    Returns:
        bytes: The extracted binary.
    """
    platform = platform.resolve()
    architecture = architecture.resolve()

    if nightly_id is None:
        metadata_url = f"{base_url.rstrip('/')}/nightlies/latest.json"
        nightly_id = fetch_latest_nightly_metadata(
            session, metadata_url, timeout=timeout
        ).nightly_id
        logger.info(f"Latest nightly build is {nightly_id}")

    artifact_name = nightly_id.artifact_name(platform, architecture)
    try:
        artifact = http_get(
            session, nightly_id.url_for(artifact_name, base_url), timeout=timeout
        )
    except RequestFailedError as e:
        raise RequestFailedError(
            f"failed to download artifact {artifact_name} ({e.cause})",
            url=e.url,
            status_code=e.status_code,
        ) from e

    sums_name = nightly_id.sums_file_name
    try:
        sums = http_get(
            session, nightly_id.url_for(sums_name, base_url), timeout=timeout
        )
    except RequestFailedError as e:
        raise RequestFailedError(
            f"failed to download {sums_name} ({e.cause})",
            url=e.url,
            status_code=e.status_code,
        ) from e

    verify_artifact_checksum_only(artifact_name, artifact, sums)
    return extract_binary_from_tar_gz(artifact_name, artifact, platform, max_size)
