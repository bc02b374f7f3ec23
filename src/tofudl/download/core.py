"""
Shared download flows.

The live downloader, the caching downloader and the mirror differ only in
how they list versions and fetch single artifacts; choosing a version,
verifying and extracting is the same for all of them.
"""

from typing import Callable, List, Optional

from tofudl.constants import (
    ARCHIVE_EXTENSION,
    ARTIFACT_PREFIX,
    MAXIMUM_UNCOMPRESSED_FILE_SIZE,
    SIGNATURE_FILE_SUFFIX,
    SUMS_FILE_SUFFIX,
)
from tofudl.exceptions import (
    NoSuchArtifactError,
    NoSuchVersionError,
    RequestFailedError,
    TofuDLError,
    UnsupportedPlatformOrArchitectureError,
)
from tofudl.log_utils import logger

from .interfaces import DownloadOptions, ListVersionsOptions
from .targets import Architecture, Platform
from .verification import extract_binary_from_tar_gz
from .version import Version, VersionWithArtifacts

ArtifactFetcher = Callable[[VersionWithArtifacts, str], bytes]
ArtifactVerifier = Callable[[str, bytes, bytes, bytes], None]
VersionLister = Callable[[Optional[ListVersionsOptions]], List[VersionWithArtifacts]]
VersionDownloader = Callable[[VersionWithArtifacts, Platform, Architecture], bytes]


def sums_file_name(version: Version) -> str:
    return f"{ARTIFACT_PREFIX}{version}{SUMS_FILE_SUFFIX}"


def signature_file_name(version: Version) -> str:
    return f"{ARTIFACT_PREFIX}{version}{SIGNATURE_FILE_SUFFIX}"


def archive_file_name(
    version: Version, platform: Platform, architecture: Architecture
) -> str:
    return (
        f"{ARTIFACT_PREFIX}{version}_{platform.value}_{architecture.value}"
        f"{ARCHIVE_EXTENSION}"
    )


def _fetch_required(
    download_artifact: ArtifactFetcher, version: VersionWithArtifacts, name: str
) -> bytes:
    try:
        return download_artifact(version, name)
    except TofuDLError as e:
        raise RequestFailedError(f"failed to download {name} ({e})") from e


def download_version(
    version: VersionWithArtifacts,
    platform: Platform,
    architecture: Architecture,
    download_artifact: ArtifactFetcher,
    verify_artifact: ArtifactVerifier,
    max_size: int = MAXIMUM_UNCOMPRESSED_FILE_SIZE,
) -> bytes:
    """
    Download, verify and extract the binary of a listed version.

    Parameters:
        version (VersionWithArtifacts): The version to fetch.
        platform (Platform): Target platform; AUTO is resolved against the host.
        architecture (Architecture): Target architecture; AUTO is resolved against the host.
        download_artifact (ArtifactFetcher): Fetches one artifact of a version.
        verify_artifact (ArtifactVerifier): Checks an artifact against the signed manifest.
        max_size (int): Upper bound for the extracted binary.

    Returns:
        bytes: The extracted binary.

    Raises:
        RequestFailedError: If the checksum manifest or its signature cannot be fetched.
        UnsupportedPlatformOrArchitectureError: If no archive is listed for the target.
        SignatureError: If the manifest signature is invalid or lacks the archive.
        ArtifactCorruptedError: If the archive is corrupt or its checksum mismatches.
    """
    sums = _fetch_required(download_artifact, version, sums_file_name(version.id))
    signature = _fetch_required(
        download_artifact, version, signature_file_name(version.id)
    )

    platform = platform.resolve()
    architecture = architecture.resolve()

    archive_name = archive_file_name(version.id, platform, architecture)
    try:
        archive = download_artifact(version, archive_name)
    except NoSuchArtifactError as e:
        raise UnsupportedPlatformOrArchitectureError(
            platform.value, architecture.value, str(version.id)
        ) from e

    verify_artifact(archive_name, archive, sums, signature)
    logger.debug(f"Verified {archive_name}")
    return extract_binary_from_tar_gz(archive_name, archive, platform, max_size)


def select_version(
    versions: List[VersionWithArtifacts], version: Optional[Version] = None
) -> VersionWithArtifacts:
    """
    Pick the requested version from a descending listing, or the newest one.

    Raises:
        RequestFailedError: If the listing is empty.
        NoSuchVersionError: If the requested version is not listed.
    """
    if not versions:
        raise RequestFailedError("the API request returned no versions")
    if version is None:
        return versions[0]
    for candidate in versions:
        if candidate.id == version:
            return candidate
    raise NoSuchVersionError(str(version))


def download(
    options: Optional[DownloadOptions],
    list_versions: VersionLister,
    download_version: VersionDownloader,
) -> bytes:
    """
    Choose a version according to `options` and download its binary.

    Raises:
        InvalidOptionsError: If the options are contradictory.
        RequestFailedError: If the listing is empty or cannot be fetched.
        NoSuchVersionError: If an explicitly requested version is not listed.
    """
    options = options or DownloadOptions()
    versions = list_versions(options.list_options())
    chosen = select_version(versions, options.version)
    logger.info(f"Selected version {chosen.id}")
    return download_version(chosen, options.platform, options.architecture)
