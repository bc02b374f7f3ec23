"""
Constants and configuration values for tofudl.

This module contains all hardcoded values, URLs, timeouts, and other constants
used throughout the application.
"""

# Product branding
PRODUCT_NAME = "OpenTofu"
BINARY_NAME = "tofu"
WINDOWS_BINARY_SUFFIX = ".exe"
ARTIFACT_PREFIX = "tofu_"
CLI_BINARY_NAME = "tofudl"
CLI_ENV_PREFIX = "TOFUDL_"

# Distribution endpoints
DEFAULT_DOWNLOAD_API_URL = "https://get.opentofu.org/tofu/api.json"
# Placeholders: {version} and {artifact}
DEFAULT_MIRROR_URL_TEMPLATE = (
    "https://github.com/opentofu/opentofu/releases/download/v{version}/{artifact}"
)
MIRROR_URL_TEMPLATE_FIELDS = frozenset({"version", "artifact"})

# Nightly builds
NIGHTLY_BASE_URL = "https://nightlies.opentofu.org"
NIGHTLY_LATEST_METADATA_URL = f"{NIGHTLY_BASE_URL}/nightlies/latest.json"
NIGHTLY_ARTIFACT_PREFIX = "tofu_nightly-"
NIGHTLY_ID_PATTERN = r"^\d{8}-[a-fA-F0-9]{10}$"

# Artifact naming
SUMS_FILE_SUFFIX = "_SHA256SUMS"
SIGNATURE_FILE_SUFFIX = "_SHA256SUMS.gpgsig"
ARCHIVE_EXTENSION = ".tar.gz"
ARTIFACT_NAME_PATTERN = r"^[a-zA-Z0-9._-]+$"

# Version grammar: MAJOR.MINOR.PATCH[-{alpha|beta|rc}N]
VERSION_REGEX_PATTERN = (
    r"^(?P<major>[0-9]+)\.(?P<minor>[0-9]+)\.(?P<patch>[0-9]+)"
    r"(|-(?P<stability>alpha|beta|rc)(?P<stability_version>[0-9]+))$"
)
PLATFORM_REGEX_PATTERN = r"^[a-z]*$"
ARCHITECTURE_REGEX_PATTERN = r"^[a-z0-9]*$"

# Protects against decompression bombs (1 TiB)
MAXIMUM_UNCOMPRESSED_FILE_SIZE = 1024 * 1024 * 1024 * 1024

# Cache/mirror layout
API_FILE_NAME = "api.json"
VERSION_DIR_PREFIX = "v"
CACHE_APP_NAME = "tofudl"

# Cache timeouts (seconds). 0 disables caching, negative never expires.
DEFAULT_API_CACHE_TIMEOUT = 30 * 60
DEFAULT_ARTIFACT_CACHE_TIMEOUT = 30 * 60

# Download and retry settings
DEFAULT_CONNECT_RETRIES = 5
DEFAULT_BACKOFF_FACTOR = 0.3
DEFAULT_REQUEST_TIMEOUT = 30
DEFAULT_CHUNK_SIZE = 8192
RETRY_STATUS_FORCELIST = (408, 429, 500, 502, 503, 504)
EXECUTABLE_PERMISSIONS = 0o755
REGULAR_FILE_PERMISSIONS = 0o644

# Mirror HTTP server
DEFAULT_MIRROR_HOST = "127.0.0.1"
DEFAULT_MIRROR_PORT = 8080
CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_OCTET_STREAM = "application/octet-stream"
CONTENT_TYPE_HTML = "text/html"

# Logging configuration
LOGGER_NAME = "tofudl"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT = 5
LOG_FILE_NAME = "tofudl.log"

# Environment variable names
LOG_LEVEL_ENV_VAR = "TOFUDL_LOG_LEVEL"

# Configuration file
CONFIG_FILE_NAME = "tofudl.yaml"
CONFIG_SECTION_DOWNLOADER = "downloader"
CONFIG_SECTION_CACHE = "cache"
CONFIG_SECTION_MIRROR = "mirror"
