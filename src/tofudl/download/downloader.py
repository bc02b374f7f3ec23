"""
Live Downloader

Fetches the version listing from the API endpoint and artifacts from the
download mirror described by a URL template.
"""

import re
from typing import List, Optional

from tofudl.config import DownloaderConfig
from tofudl.constants import ARTIFACT_NAME_PATTERN, NIGHTLY_BASE_URL
from tofudl.exceptions import InvalidOptionsError, NoSuchArtifactError
from tofudl.log_utils import logger
from tofudl.utils import http_get

from . import core
from .interfaces import Downloader, DownloadOptions, ListVersionsOptions
from .nightly import download_nightly_build
from .targets import Architecture, Platform
from .verification import GPGKeyRing, verify_artifact
from .version import VersionWithArtifacts, parse_api_document

_ARTIFACT_NAME_RX = re.compile(ARTIFACT_NAME_PATTERN)


def validate_artifact_name(artifact_name: str) -> None:
    """
    Reject artifact names that are not plain file names.

    Raises:
        InvalidOptionsError: If the name contains anything but letters, digits, '.', '_' or '-'.
    """
    if (
        not isinstance(artifact_name, str)
        or not _ARTIFACT_NAME_RX.fullmatch(artifact_name)
        or artifact_name in (".", "..")
    ):
        raise InvalidOptionsError(f"invalid artifact name: {artifact_name!r}")


def ensure_artifact_listed(version: VersionWithArtifacts, artifact_name: str) -> None:
    """
    Raises:
        NoSuchArtifactError: If the version does not list the artifact.
    """
    if artifact_name not in version.files:
        raise NoSuchArtifactError(artifact_name)


class HTTPDownloader(Downloader):
    """
    Downloader talking directly to the distribution endpoints.

    Every request carries the configured timeout; authorization headers are
    only sent to the endpoint they are configured for.
    """

    def __init__(self, config: DownloaderConfig, nightly_base_url: str = NIGHTLY_BASE_URL):
        self.config = config
        self.session = config.session
        self.key_ring = GPGKeyRing(config.gpg_key)
        self.nightly_base_url = nightly_base_url

    def list_versions(
        self, options: Optional[ListVersionsOptions] = None
    ) -> List[VersionWithArtifacts]:
        options = options or ListVersionsOptions()
        body = http_get(
            self.session,
            self.config.api_url,
            authorization=self.config.api_authorization,
            timeout=self.config.request_timeout,
        )
        versions = parse_api_document(body, options.minimum_stability)
        logger.debug(f"API listed {len(versions)} version(s)")
        return versions

    def download_artifact(
        self, version: VersionWithArtifacts, artifact_name: str
    ) -> bytes:
        ensure_artifact_listed(version, artifact_name)
        validate_artifact_name(artifact_name)
        url = self.config.artifact_url(str(version.id), artifact_name)
        logger.debug(f"Downloading {artifact_name} for version {version.id}")
        return http_get(
            self.session,
            url,
            authorization=self.config.download_mirror_authorization,
            timeout=self.config.request_timeout,
        )

    def verify_artifact(
        self, artifact_name: str, artifact: bytes, sums: bytes, signature: bytes
    ) -> None:
        verify_artifact(self.key_ring, artifact_name, artifact, sums, signature)

    def download_version(
        self,
        version: VersionWithArtifacts,
        platform: Platform = Platform.AUTO,
        architecture: Architecture = Architecture.AUTO,
    ) -> bytes:
        return core.download_version(
            version,
            platform,
            architecture,
            self.download_artifact,
            self.verify_artifact,
            self.config.maximum_uncompressed_file_size,
        )

    def download(self, options: Optional[DownloadOptions] = None) -> bytes:
        return core.download(options, self.list_versions, self.download_version)

    def download_nightly(self, options: Optional[DownloadOptions] = None) -> bytes:
        options = options or DownloadOptions()
        return download_nightly_build(
            self.session,
            platform=options.platform,
            architecture=options.architecture,
            nightly_id=options.nightly_id,
            timeout=self.config.request_timeout,
            max_size=self.config.maximum_uncompressed_file_size,
            base_url=self.nightly_base_url,
        )
