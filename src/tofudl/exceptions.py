"""
Custom exceptions for tofudl.

This module defines domain-specific exceptions for every error kind the
downloader, cache, mirror and release builder can report. Callers that only
care about "something went wrong" can catch TofuDLError.
"""

from tofudl.constants import PRODUCT_NAME


class TofuDLError(Exception):
    """
    Base exception for all tofudl errors.

    All custom exceptions in tofudl inherit from this class to allow for easy
    catching of all application-specific errors.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: The primary error message.
            details: Optional additional context about the error.
        """
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(TofuDLError):
    """
    Exception raised when an identifier fails validation.

    Validation errors are raised before any I/O takes place.

    Attributes:
        value: The value that failed validation.
    """

    def __init__(self, message: str, value: str | None = None) -> None:
        super().__init__(message)
        self.value = value


class InvalidVersionError(ValidationError):
    """Exception raised when a version string does not match the version grammar."""

    def __init__(self, version: str) -> None:
        super().__init__(f"Invalid version: {version}", value=str(version))
        self.version = version


class InvalidPlatformError(ValidationError):
    """Exception raised when a platform name is malformed or unknown."""

    def __init__(self, platform: str) -> None:
        super().__init__(f"Invalid platform: {platform}", value=platform)
        self.platform = platform


class InvalidArchitectureError(ValidationError):
    """Exception raised when an architecture name is malformed or unknown."""

    def __init__(self, architecture: str) -> None:
        super().__init__(f"Invalid architecture: {architecture}", value=architecture)
        self.architecture = architecture


class InvalidOptionsError(TofuDLError):
    """
    Exception raised when request options are invalid.

    This includes:
    - Mutually exclusive version and minimum stability constraints
    - Invalid stability values
    - Invalid artifact names
    - Malformed nightly build IDs
    """

    def __init__(self, cause: str) -> None:
        super().__init__(f"Invalid options: {cause}")
        self.cause = cause


class InvalidConfigurationError(TofuDLError):
    """Exception raised when the base configuration is invalid."""

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(f"Invalid configuration: {message}", details)


class ConfigFileError(InvalidConfigurationError):
    """Exception raised when a configuration file cannot be read or parsed."""

    def __init__(
        self, message: str, path: str | None = None, details: str | None = None
    ) -> None:
        super().__init__(message, details)
        self.path = path


# =============================================================================
# Platform Resolution Errors
# =============================================================================


class UnsupportedPlatformError(TofuDLError):
    """Exception raised when the current operating system cannot be resolved automatically."""

    def __init__(self, platform: str) -> None:
        super().__init__(f"Unsupported platform: {platform}")
        self.platform = platform


class UnsupportedArchitectureError(TofuDLError):
    """Exception raised when the current CPU architecture cannot be resolved automatically."""

    def __init__(self, architecture: str) -> None:
        super().__init__(f"Unsupported architecture: {architecture}")
        self.architecture = architecture


# =============================================================================
# Lookup Errors
# =============================================================================


class NoSuchVersionError(TofuDLError):
    """Exception raised when a valid version is absent from the listing."""

    def __init__(self, version: str) -> None:
        super().__init__(f"No such version: {version}")
        self.version = version


class NoSuchArtifactError(TofuDLError):
    """Exception raised when a version does not list the requested artifact."""

    def __init__(self, artifact_name: str) -> None:
        super().__init__(f"No such artifact: {artifact_name}")
        self.artifact_name = artifact_name


class UnsupportedPlatformOrArchitectureError(TofuDLError):
    """
    Exception raised when no archive is published for a platform/architecture pair.

    The platform and architecture are syntactically valid, but the version
    does not list a matching archive.
    """

    def __init__(self, platform: str, architecture: str, version: str) -> None:
        super().__init__(
            f"Unsupported platform ({platform}) or architecture ({architecture}) "
            f"for {PRODUCT_NAME} version {version}."
        )
        self.platform = platform
        self.architecture = architecture
        self.version = version


# =============================================================================
# Cache Errors
# =============================================================================


class CacheError(TofuDLError):
    """
    Base exception for storage-layer signals.

    Cache errors are always distinguished from transport errors and are turned
    into fallback attempts by the caching downloader and the mirror.
    """


class CacheMissError(CacheError):
    """Exception raised when a requested entry has never been stored."""

    def __init__(self, path: str, details: str | None = None) -> None:
        super().__init__(f"Cache miss for {path}", details)
        self.path = path


class CacheReadError(CacheError):
    """Exception raised when a stored entry exists but cannot be read."""

    def __init__(self, path: str, details: str | None = None) -> None:
        super().__init__(f"Cannot read cached entry {path}", details)
        self.path = path


class CachedEntryStaleError(CacheError):
    """Exception raised when a cached entry is older than its configured timeout."""


class CachedAPIResponseStaleError(CachedEntryStaleError):
    """Exception raised when the cached API listing is stale."""

    def __init__(self) -> None:
        super().__init__("The cached API response is stale")


class CachedArtifactStaleError(CachedEntryStaleError):
    """Exception raised when a cached artifact is stale."""

    def __init__(self, version: str, artifact: str) -> None:
        super().__init__(f"The cached artifact {artifact} for version {version} is stale")
        self.version = version
        self.artifact = artifact


# =============================================================================
# Transport Errors
# =============================================================================


class RequestFailedError(TofuDLError):
    """
    Exception raised when a request to the API or the download mirror fails.

    Attributes:
        url: The URL that was requested, when known.
        status_code: The HTTP status code returned, when a response was received.
    """

    def __init__(
        self,
        cause: str,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(f"Request failed ({cause})")
        self.cause = cause
        self.url = url
        self.status_code = status_code


class OperationCancelledError(TofuDLError):
    """Exception raised when the caller cancels a long-running operation."""

    def __init__(self, operation: str = "operation") -> None:
        super().__init__(f"The {operation} was cancelled")


# =============================================================================
# Verification Errors
# =============================================================================


class SignatureError(TofuDLError):
    """
    Exception raised when signature verification fails.

    This also covers a checksum manifest that does not list the artifact at all.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(f"Invalid signature: {message}", details)


class ArtifactCorruptedError(TofuDLError):
    """
    Exception raised when a downloaded artifact is corrupt.

    This includes:
    - Checksum mismatches
    - Decompression or tar stream failures
    - Oversized payloads
    - Archives without the expected binary
    """

    def __init__(self, artifact: str, cause: str | None = None) -> None:
        super().__init__(f"Corrupted artifact {artifact}", cause)
        self.artifact = artifact
        self.cause = cause


# =============================================================================
# Mirror and Release Errors
# =============================================================================


class MirrorError(TofuDLError):
    """Exception raised when a mirror operation cannot be performed."""


class MirrorReadOnlyError(MirrorError):
    """Exception raised when writing to a mirror configured as a pull-through cache."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            f"Cannot use {operation} when a pull-through mirror is configured"
        )
        self.operation = operation


class NightlyNotSupportedError(MirrorError):
    """Exception raised when a nightly build is requested through a mirror."""

    def __init__(self) -> None:
        super().__init__("Downloading nightly builds is not supported through mirrors")


class ReleaseBuilderError(TofuDLError):
    """Exception raised when a release cannot be assembled or published."""
