"""
Mirror

A mirror stores the API listing and artifacts in a CacheStorage. With an
upstream Downloader it acts as a read-only pull-through cache; without one it
is an origin that is populated through create_version and
create_version_asset (usually by a ReleaseBuilder).
"""

import threading
from typing import List, Optional, Union

from tofudl.config import MirrorConfig
from tofudl.constants import MAXIMUM_UNCOMPRESSED_FILE_SIZE
from tofudl.exceptions import (
    CacheMissError,
    InvalidConfigurationError,
    MirrorError,
    MirrorReadOnlyError,
    NightlyNotSupportedError,
    NoSuchVersionError,
    RequestFailedError,
    ValidationError,
)
from tofudl.log_utils import logger

from . import core
from .cache import (
    CacheStorage,
    read_artifact_from_storage,
    read_through,
    read_versions_from_storage,
)
from .caching import ProgressCallback, prewarm_versions
from .downloader import ensure_artifact_listed, validate_artifact_name
from .interfaces import Downloader, DownloadOptions, ListVersionsOptions
from .targets import Architecture, Platform
from .verification import GPGKeyRing, verify_artifact
from .version import (
    Version,
    VersionWithArtifacts,
    encode_api_document,
    filter_versions,
    parse_api_document,
)


def _as_version(version: Union[Version, str]) -> Version:
    return version if isinstance(version, Version) else Version(version)


class Mirror(Downloader):
    """
    Storage-backed Downloader with an optional upstream.

    Metadata writes are an unsynchronized read-modify-write of the stored
    listing: concurrent writers can lose updates, so writes must be
    serialized by the caller.
    """

    def __init__(
        self,
        storage: CacheStorage,
        upstream: Optional[Downloader] = None,
        config: Optional[MirrorConfig] = None,
    ):
        self.storage = storage
        self.upstream = upstream
        self.config = config or MirrorConfig()
        self._key_ring: Optional[GPGKeyRing] = None
        if self.config.gpg_key:
            self._key_ring = GPGKeyRing(self.config.gpg_key)

    @property
    def is_origin(self) -> bool:
        return self.upstream is None

    # Reads

    def _read_origin_versions(
        self, min_stability=None
    ) -> List[VersionWithArtifacts]:
        try:
            return read_versions_from_storage(
                self.storage, 0, allow_stale=True, min_stability=min_stability
            )
        except CacheMissError:
            logger.debug("Mirror has no API listing yet; serving an empty listing")
            return []

    def list_versions(
        self, options: Optional[ListVersionsOptions] = None
    ) -> List[VersionWithArtifacts]:
        options = options or ListVersionsOptions()
        if self.is_origin:
            return self._read_origin_versions(options.minimum_stability)
        if self.config.api_cache_timeout == 0:
            return self.upstream.list_versions(options)

        versions = read_through(
            "mirrored API listing",
            lambda allow_stale: read_versions_from_storage(
                self.storage, self.config.api_cache_timeout, allow_stale
            ),
            lambda: self.upstream.list_versions(ListVersionsOptions()),
            lambda fetched: self.storage.store_api_file(encode_api_document(fetched)),
            self.config.allow_stale,
        )
        return filter_versions(versions, options.minimum_stability)

    def download_artifact(
        self, version: VersionWithArtifacts, artifact_name: str
    ) -> bytes:
        ensure_artifact_listed(version, artifact_name)
        validate_artifact_name(artifact_name)
        if self.is_origin:
            return read_artifact_from_storage(
                self.storage, version.id, artifact_name, 0, allow_stale=True
            )
        if self.config.artifact_cache_timeout == 0:
            return self.upstream.download_artifact(version, artifact_name)

        return read_through(
            f"mirrored artifact {artifact_name} of version {version.id}",
            lambda allow_stale: read_artifact_from_storage(
                self.storage,
                version.id,
                artifact_name,
                self.config.artifact_cache_timeout,
                allow_stale,
            ),
            lambda: self.upstream.download_artifact(version, artifact_name),
            lambda data: self.storage.store_artifact(version.id, artifact_name, data),
            self.config.allow_stale,
        )

    def verify_artifact(
        self, artifact_name: str, artifact: bytes, sums: bytes, signature: bytes
    ) -> None:
        if self._key_ring is not None:
            verify_artifact(self._key_ring, artifact_name, artifact, sums, signature)
            return
        if self.upstream is not None:
            self.upstream.verify_artifact(artifact_name, artifact, sums, signature)
            return
        raise InvalidConfigurationError(
            "mirror has neither a GPG key nor an upstream to verify artifacts with"
        )

    @property
    def maximum_uncompressed_file_size(self) -> int:
        upstream_config = getattr(self.upstream, "config", None)
        return getattr(
            upstream_config,
            "maximum_uncompressed_file_size",
            MAXIMUM_UNCOMPRESSED_FILE_SIZE,
        )

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
            self.maximum_uncompressed_file_size,
        )

    def download(self, options: Optional[DownloadOptions] = None) -> bytes:
        return core.download(options, self.list_versions, self.download_version)

    def download_nightly(self, options: Optional[DownloadOptions] = None) -> bytes:
        raise NightlyNotSupportedError()

    def prewarm(
        self,
        version_count: int = 0,
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """
        Pull every artifact of the newest `version_count` versions from the upstream.

        Does nothing for an origin mirror or when artifact caching is disabled.
        """
        if self.is_origin or self.config.artifact_cache_timeout == 0:
            logger.info("Mirror has nothing to prewarm")
            return
        prewarm_versions(self, version_count, progress, cancel_event)

    # Writes

    def _ensure_writable(self, operation: str) -> None:
        if not self.is_origin:
            raise MirrorReadOnlyError(operation)

    def _read_stored_versions(self) -> List[VersionWithArtifacts]:
        try:
            body, _ = self.storage.read_api_file()
        except CacheMissError:
            return []
        try:
            return parse_api_document(body, strict=True)
        except (RequestFailedError, ValidationError) as e:
            raise MirrorError(
                "api.json corrupt in mirror storage", details=str(e)
            ) from e

    def create_version(self, version: Union[Version, str]) -> None:
        """
        Add an empty version to the front of the listing.

        Raises:
            MirrorReadOnlyError: If the mirror has an upstream.
            InvalidVersionError: If the version is malformed.
            MirrorError: If the version already exists.
        """
        self._ensure_writable("create_version")
        version = _as_version(version)

        versions = self._read_stored_versions()
        if any(existing.id == version for existing in versions):
            raise MirrorError(f"Version {version} already exists")
        versions.insert(0, VersionWithArtifacts(id=version, files=[]))
        self.storage.store_api_file(encode_api_document(versions))
        logger.info(f"Created version {version} on mirror")

    def create_version_asset(
        self, version: Union[Version, str], artifact_name: str, data: bytes
    ) -> None:
        """
        Store an artifact for an existing version and list it.

        Raises:
            MirrorReadOnlyError: If the mirror has an upstream.
            InvalidOptionsError: If the artifact name is not a valid file name.
            NoSuchVersionError: If the version has not been created.
        """
        self._ensure_writable("create_version_asset")
        version = _as_version(version)
        validate_artifact_name(artifact_name)

        versions = self._read_stored_versions()
        entry = next((v for v in versions if v.id == version), None)
        if entry is None:
            raise NoSuchVersionError(str(version))

        self.storage.store_artifact(version, artifact_name, data)
        if artifact_name not in entry.files:
            entry.files.append(artifact_name)
        self.storage.store_api_file(encode_api_document(versions))
        logger.debug(f"Stored {artifact_name} for version {version} on mirror")
