"""
tofudl Download Subsystem

This package resolves, downloads, verifies and extracts release binaries, and
provides the caching downloader, the pull-through mirror and the release
builder on top of a shared Downloader interface.

Core Components:
- interfaces: Downloader interface and option records
- version: version model and API listing codec
- targets: platform and architecture enumerations
- verification: signature, checksum and archive handling
- downloader: live HTTP downloader
- cache: cache storage and tiered reads
- caching: caching downloader
- mirror / server: mirror and its HTTP surface
- release_builder: release assembly for origin mirrors
"""

from .cache import CacheStorage, FilesystemStorage
from .caching import CachingDownloader
from .downloader import HTTPDownloader
from .interfaces import Downloader, DownloadOptions, ListVersionsOptions
from .mirror import Mirror
from .nightly import NightlyID
from .release_builder import ReleaseBuilder
from .server import create_app
from .targets import Architecture, Platform
from .verification import GPGKeyRing
from .version import Stability, Version, VersionWithArtifacts

__all__ = [
    # Interfaces
    "Downloader",
    "DownloadOptions",
    "ListVersionsOptions",
    # Model
    "Version",
    "Stability",
    "VersionWithArtifacts",
    "Platform",
    "Architecture",
    "NightlyID",
    # Downloaders
    "HTTPDownloader",
    "CachingDownloader",
    "Mirror",
    # Storage
    "CacheStorage",
    "FilesystemStorage",
    # Verification and publishing
    "GPGKeyRing",
    "ReleaseBuilder",
    "create_app",
]
