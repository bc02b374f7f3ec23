"""
Cache Storage for the tofudl Download Subsystem

Storage persists the API listing and artifacts together with their write
time. It never decides whether an entry is stale; the helpers at the bottom
of this module apply the caller's timeout policy and implement the tiered
fresh-cache, live, stale-cache read used by the caching downloader and the
pull-through mirror.
"""

import os
import re
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple, TypeVar

from tofudl.constants import API_FILE_NAME, ARTIFACT_NAME_PATTERN, VERSION_DIR_PREFIX
from tofudl.exceptions import (
    CachedAPIResponseStaleError,
    CachedArtifactStaleError,
    CacheError,
    CacheMissError,
    CacheReadError,
    InvalidOptionsError,
    TofuDLError,
)
from tofudl.log_utils import logger

from .version import Stability, Version, VersionWithArtifacts, parse_api_document

T = TypeVar("T")

_ARTIFACT_NAME_RX = re.compile(ARTIFACT_NAME_PATTERN)


class CacheStorage(ABC):
    """
    Abstract byte store for the API listing and versioned artifacts.

    Reads return the stored bytes and the time they were written. A missing
    entry raises CacheMissError; any other read failure raises CacheReadError.
    Writers create whatever structure they need.
    """

    @abstractmethod
    def read_api_file(self) -> Tuple[bytes, datetime]:
        """Return the stored API listing and its write time."""

    @abstractmethod
    def store_api_file(self, data: bytes) -> None:
        """Replace the stored API listing."""

    @abstractmethod
    def read_artifact(self, version: Version, artifact_name: str) -> Tuple[bytes, datetime]:
        """Return a stored artifact and its write time."""

    @abstractmethod
    def store_artifact(self, version: Version, artifact_name: str, data: bytes) -> None:
        """Replace a stored artifact."""


def _atomic_write_bytes(file_path: str, data: bytes) -> None:
    """
    Write bytes to a file atomically by writing to a temporary file in the same
    directory and replacing the target on success.

    Raises:
        CacheError: If the directory cannot be created or the write fails.
    """
    directory = os.path.dirname(file_path)
    try:
        os.makedirs(directory, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(dir=directory, prefix="tmp-", suffix=".tmp")
    except OSError as e:
        raise CacheError(f"Could not create temporary file for {file_path}", str(e)) from e

    try:
        with os.fdopen(temp_fd, "wb") as temp_f:
            temp_f.write(data)
        os.replace(temp_path, file_path)
    except OSError as e:
        raise CacheError(f"Could not write to {file_path}", str(e)) from e
    finally:
        if os.path.exists(temp_path):
            try:
                os.remove(temp_path)
            except OSError:
                logger.debug(f"Could not remove temporary file {temp_path}")


class FilesystemStorage(CacheStorage):
    """
    CacheStorage backed by a directory.

    Layout:
        <root>/api.json
        <root>/v<version>/<artifact>

    The write time of an entry is its file modification time.
    """

    def __init__(self, directory: str):
        if not directory:
            raise InvalidOptionsError("a storage directory is required")
        self.directory = os.path.abspath(os.path.expanduser(str(directory)))

    def _api_path(self) -> str:
        return os.path.join(self.directory, API_FILE_NAME)

    def _artifact_path(self, version: Version, artifact_name: str) -> str:
        if not isinstance(artifact_name, str) or not _ARTIFACT_NAME_RX.fullmatch(
            artifact_name
        ) or artifact_name in (".", ".."):
            raise InvalidOptionsError(f"invalid artifact name: {artifact_name!r}")
        return os.path.join(
            self.directory, f"{VERSION_DIR_PREFIX}{version}", artifact_name
        )

    @staticmethod
    def _read(path: str) -> Tuple[bytes, datetime]:
        try:
            with open(path, "rb") as f:
                data = f.read()
                mtime = os.fstat(f.fileno()).st_mtime
        except FileNotFoundError as e:
            raise CacheMissError(path) from e
        except OSError as e:
            raise CacheReadError(path, str(e)) from e
        return data, datetime.fromtimestamp(mtime, tz=timezone.utc)

    def read_api_file(self) -> Tuple[bytes, datetime]:
        return self._read(self._api_path())

    def store_api_file(self, data: bytes) -> None:
        _atomic_write_bytes(self._api_path(), data)

    def read_artifact(self, version: Version, artifact_name: str) -> Tuple[bytes, datetime]:
        return self._read(self._artifact_path(version, artifact_name))

    def store_artifact(self, version: Version, artifact_name: str, data: bytes) -> None:
        _atomic_write_bytes(self._artifact_path(version, artifact_name), data)

    def __repr__(self) -> str:
        return f"FilesystemStorage({self.directory!r})"


def is_stale(
    write_time: datetime, timeout: float, now: Optional[datetime] = None
) -> bool:
    """
    Decide whether an entry written at `write_time` is stale.

    A timeout of zero or less never expires; callers treat zero as "caching
    disabled" before getting here.
    """
    if timeout <= 0:
        return False
    now = now or datetime.now(timezone.utc)
    return now > write_time + timedelta(seconds=timeout)


def read_versions_from_storage(
    storage: CacheStorage,
    timeout: float,
    allow_stale: bool = False,
    min_stability: Optional[Stability] = None,
) -> List[VersionWithArtifacts]:
    """
    Read and decode the cached API listing.

    Raises:
        CacheMissError, CacheReadError: If the listing cannot be read.
        CachedAPIResponseStaleError: If the listing is stale and stale reads are not allowed.
        RequestFailedError: If the stored document cannot be decoded.
    """
    body, write_time = storage.read_api_file()
    if not allow_stale and is_stale(write_time, timeout):
        raise CachedAPIResponseStaleError()
    return parse_api_document(body, min_stability)


def read_artifact_from_storage(
    storage: CacheStorage,
    version: Version,
    artifact_name: str,
    timeout: float,
    allow_stale: bool = False,
) -> bytes:
    """
    Read a cached artifact.

    Raises:
        CacheMissError, CacheReadError: If the artifact cannot be read.
        CachedArtifactStaleError: If the artifact is stale and stale reads are not allowed.
    """
    data, write_time = storage.read_artifact(version, artifact_name)
    if not allow_stale and is_stale(write_time, timeout):
        raise CachedArtifactStaleError(str(version), artifact_name)
    return data


def read_through(
    description: str,
    read_cached: Callable[[bool], T],
    fetch_live: Callable[[], T],
    store: Callable[[T], None],
    allow_stale: bool,
) -> T:
    """
    Serve a value from a fresh cache entry, the live source or a stale entry.

    Order: a fresh cached entry; otherwise the live source, whose result is
    stored on a best-effort basis; otherwise, when `allow_stale` is set, a
    stale cached entry; otherwise the live source's error is raised.

    Parameters:
        description (str): What is being read, for log messages.
        read_cached (Callable[[bool], T]): Reads the cache; the argument allows stale entries.
        fetch_live (Callable[[], T]): Fetches from the live source.
        store (Callable[[T], None]): Persists a live result.
        allow_stale (bool): Whether a stale entry may be served when the live source fails.

    Returns:
        T: The value from whichever tier succeeded.
    """
    try:
        value = read_cached(False)
        logger.debug(f"Cache hit for {description}")
        return value
    except TofuDLError as e:
        logger.debug(f"Cache miss for {description}: {e}")

    try:
        value = fetch_live()
    except TofuDLError as live_error:
        if not allow_stale:
            raise
        try:
            value = read_cached(True)
        except TofuDLError as e:
            logger.debug(f"No stale cache entry for {description}: {e}")
            raise live_error from None
        logger.warning(
            f"Serving stale cached {description} because the live fetch failed: {live_error}"
        )
        return value

    try:
        store(value)
    except (CacheError, OSError) as e:
        logger.warning(f"Failed to cache {description}: {e}")
    return value
