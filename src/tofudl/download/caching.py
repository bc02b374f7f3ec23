"""
Caching Downloader

Decorates another Downloader with a CacheStorage so the API listing and
artifacts are served from disk while fresh and, optionally, while stale when
the backing downloader is unreachable.
"""

import threading
from typing import Callable, List, Optional

from tofudl.config import CacheConfig
from tofudl.constants import MAXIMUM_UNCOMPRESSED_FILE_SIZE
from tofudl.exceptions import OperationCancelledError, TofuDLError
from tofudl.log_utils import logger

from . import core
from .cache import (
    CacheStorage,
    FilesystemStorage,
    read_artifact_from_storage,
    read_through,
    read_versions_from_storage,
)
from .interfaces import Downloader, DownloadOptions, ListVersionsOptions
from .targets import Architecture, Platform
from .version import VersionWithArtifacts, encode_api_document, filter_versions

ProgressCallback = Callable[[int], None]


def prewarm_versions(
    downloader: Downloader,
    version_count: int = 0,
    progress: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> None:
    """
    Fetch every artifact of the newest versions through `downloader`.

    Parameters:
        downloader (Downloader): Downloader whose download_artifact fills a cache.
        version_count (int): Number of newest versions to fetch; all when 0 or less.
        progress (Optional[ProgressCallback]): Called with the completed percentage after each artifact.
        cancel_event (Optional[threading.Event]): Checked between artifacts.

    Raises:
        OperationCancelledError: If `cancel_event` is set.
        TofuDLError: If listing or any artifact download fails.
    """
    versions = downloader.list_versions()
    if version_count > 0:
        versions = versions[:version_count]

    total = sum(len(v.files) for v in versions)
    done = 0
    logger.info(f"Prewarming {total} artifact(s) from {len(versions)} version(s)")
    for version in versions:
        for artifact_name in version.files:
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelledError("prewarm")
            try:
                downloader.download_artifact(version, artifact_name)
            except TofuDLError as e:
                logger.error(
                    f"Failed to download artifact {artifact_name} for version {version.id}: {e}"
                )
                raise
            done += 1
            if progress is not None:
                progress(int(100 * done / total))


class CachingDownloader(Downloader):
    """
    Downloader that caches the API listing and artifacts of a backing downloader.

    A timeout of 0 (or no storage at all) disables caching for that entry kind
    and every call is delegated. The listing is always fetched and cached
    unfiltered; stability filters are applied after reading.
    """

    def __init__(
        self,
        backing_downloader: Downloader,
        storage: Optional[CacheStorage],
        config: Optional[CacheConfig] = None,
    ):
        self.backing_downloader = backing_downloader
        self.storage = storage
        self.config = config or CacheConfig()

    @classmethod
    def from_config(
        cls, backing_downloader: Downloader, config: CacheConfig
    ) -> "CachingDownloader":
        """Build a caching downloader storing entries in the configured directory."""
        return cls(backing_downloader, FilesystemStorage(config.cache_directory), config)

    def _api_cache_enabled(self) -> bool:
        return self.storage is not None and self.config.api_cache_timeout != 0

    def _artifact_cache_enabled(self) -> bool:
        return self.storage is not None and self.config.artifact_cache_timeout != 0

    def list_versions(
        self, options: Optional[ListVersionsOptions] = None
    ) -> List[VersionWithArtifacts]:
        options = options or ListVersionsOptions()
        if not self._api_cache_enabled():
            return self.backing_downloader.list_versions(options)

        versions = read_through(
            "API listing",
            lambda allow_stale: read_versions_from_storage(
                self.storage, self.config.api_cache_timeout, allow_stale
            ),
            lambda: self.backing_downloader.list_versions(ListVersionsOptions()),
            lambda fetched: self.storage.store_api_file(encode_api_document(fetched)),
            self.config.allow_stale,
        )
        return filter_versions(versions, options.minimum_stability)

    def download_artifact(
        self, version: VersionWithArtifacts, artifact_name: str
    ) -> bytes:
        if not self._artifact_cache_enabled():
            return self.backing_downloader.download_artifact(version, artifact_name)

        return read_through(
            f"artifact {artifact_name} of version {version.id}",
            lambda allow_stale: read_artifact_from_storage(
                self.storage,
                version.id,
                artifact_name,
                self.config.artifact_cache_timeout,
                allow_stale,
            ),
            lambda: self.backing_downloader.download_artifact(version, artifact_name),
            lambda data: self.storage.store_artifact(version.id, artifact_name, data),
            self.config.allow_stale,
        )

    def verify_artifact(
        self, artifact_name: str, artifact: bytes, sums: bytes, signature: bytes
    ) -> None:
        self.backing_downloader.verify_artifact(artifact_name, artifact, sums, signature)

    @property
    def maximum_uncompressed_file_size(self) -> int:
        backing_config = getattr(self.backing_downloader, "config", None)
        return getattr(
            backing_config,
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
        return self.backing_downloader.download_nightly(options)

    def prewarm(
        self,
        version_count: int = 0,
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """
        Fill the cache with every artifact of the newest `version_count` versions.

        Does nothing when artifact caching is disabled.
        """
        if not self._artifact_cache_enabled():
            logger.info("Artifact caching is disabled; nothing to prewarm")
            return
        prewarm_versions(self, version_count, progress, cancel_event)
