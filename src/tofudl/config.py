"""
Configuration records and YAML config file loading for tofudl.

Each record is a plain dataclass validated once all fields are set. The
optional YAML file holds one mapping per record under the `downloader`,
`cache` and `mirror` keys, using the field names below.
"""

import os
import string
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import platformdirs
import requests
import yaml

from tofudl.constants import (
    CACHE_APP_NAME,
    CONFIG_FILE_NAME,
    CONFIG_SECTION_CACHE,
    CONFIG_SECTION_DOWNLOADER,
    CONFIG_SECTION_MIRROR,
    DEFAULT_API_CACHE_TIMEOUT,
    DEFAULT_ARTIFACT_CACHE_TIMEOUT,
    DEFAULT_DOWNLOAD_API_URL,
    DEFAULT_MIRROR_URL_TEMPLATE,
    DEFAULT_REQUEST_TIMEOUT,
    MAXIMUM_UNCOMPRESSED_FILE_SIZE,
    MIRROR_URL_TEMPLATE_FIELDS,
)
from tofudl.exceptions import ConfigFileError, InvalidConfigurationError
from tofudl.log_utils import logger
from tofudl.utils import create_session

CONFIG_SECTIONS = (CONFIG_SECTION_DOWNLOADER, CONFIG_SECTION_CACHE, CONFIG_SECTION_MIRROR)


def default_cache_directory() -> str:
    """Per-user cache directory used when none is configured."""
    return platformdirs.user_cache_dir(CACHE_APP_NAME)


def default_config_file() -> str:
    """Per-user location of the YAML configuration file."""
    return os.path.join(platformdirs.user_config_dir(CACHE_APP_NAME), CONFIG_FILE_NAME)


def _validate_url(name: str, value: str) -> None:
    if not isinstance(value, str) or not value.startswith(("http://", "https://")):
        raise InvalidConfigurationError(f"{name} must be an http(s) URL", str(value))


def _validate_url_template(template: str) -> None:
    try:
        used = {
            field_name
            for _, field_name, _, _ in string.Formatter().parse(template)
            if field_name is not None
        }
    except ValueError as e:
        raise InvalidConfigurationError(
            "malformed download mirror URL template", str(e)
        ) from e
    unknown = used - MIRROR_URL_TEMPLATE_FIELDS
    if unknown:
        raise InvalidConfigurationError(
            "unknown placeholder(s) in download mirror URL template",
            ", ".join(sorted(unknown)),
        )
    if "artifact" not in used:
        raise InvalidConfigurationError(
            "download mirror URL template must contain {artifact}", template
        )
    _validate_url("download_mirror_url_template", template)


def _validate_timeout(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfigurationError(f"{name} must be a number of seconds", str(value))


def _from_mapping(cls, section: str, mapping: Optional[Dict[str, Any]], **overrides):
    known = {f.name for f in fields(cls) if f.init}
    values: Dict[str, Any] = {}
    for key, value in (mapping or {}).items():
        if key not in known:
            raise InvalidConfigurationError(
                f"unknown option in {section} section", str(key)
            )
        values[key] = value
    values.update({k: v for k, v in overrides.items() if v is not None})
    return cls(**values)


@dataclass
class DownloaderConfig:
    """
    Settings for the live downloader.

    The GPG key has no default: callers must supply the ASCII-armored public
    key used to verify release signatures.
    """

    gpg_key: str
    """ASCII-armored public key used to verify checksum manifest signatures"""

    api_url: str = DEFAULT_DOWNLOAD_API_URL
    """URL of the JSON version listing"""

    api_authorization: Optional[str] = None
    """Authorization header value sent to the API endpoint"""

    download_mirror_url_template: str = DEFAULT_MIRROR_URL_TEMPLATE
    """URL template with {version} and {artifact} placeholders"""

    download_mirror_authorization: Optional[str] = None
    """Authorization header value sent to the download mirror"""

    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    """Per-request timeout in seconds"""

    maximum_uncompressed_file_size: int = MAXIMUM_UNCOMPRESSED_FILE_SIZE
    """Upper bound for an extracted binary in bytes"""

    session: Optional[requests.Session] = field(default=None, repr=False)
    """HTTP session; one with retries and TLS 1.3 minimum is created when omitted"""

    def __post_init__(self) -> None:
        self.validate()
        if self.session is None:
            self.session = create_session()

    def validate(self) -> None:
        """
        Check the configuration for consistency.

        Raises:
            InvalidConfigurationError: On the first invalid field.
        """
        if not isinstance(self.gpg_key, str) or not self.gpg_key.strip():
            raise InvalidConfigurationError("a GPG key is required")
        _validate_url("api_url", self.api_url)
        _validate_url_template(self.download_mirror_url_template)
        _validate_timeout("request_timeout", self.request_timeout)
        if self.request_timeout <= 0:
            raise InvalidConfigurationError(
                "request_timeout must be positive", str(self.request_timeout)
            )
        if (
            isinstance(self.maximum_uncompressed_file_size, bool)
            or not isinstance(self.maximum_uncompressed_file_size, int)
            or self.maximum_uncompressed_file_size <= 0
        ):
            raise InvalidConfigurationError(
                "maximum_uncompressed_file_size must be a positive integer",
                str(self.maximum_uncompressed_file_size),
            )

    def artifact_url(self, version: str, artifact_name: str) -> str:
        return self.download_mirror_url_template.format(
            version=version, artifact=artifact_name
        )

    @classmethod
    def from_mapping(
        cls, mapping: Optional[Dict[str, Any]], **overrides
    ) -> "DownloaderConfig":
        """
        Build a config from a config file section.

        A `gpg_key_file` entry is read and used as `gpg_key`. Keyword overrides
        that are not None replace file values.
        """
        mapping = dict(mapping or {})
        key_file = overrides.pop("gpg_key_file", None) or mapping.pop(
            "gpg_key_file", None
        )
        if key_file and not overrides.get("gpg_key") and not mapping.get("gpg_key"):
            mapping["gpg_key"] = read_gpg_key_file(key_file)
        if "gpg_key" not in mapping and not overrides.get("gpg_key"):
            raise InvalidConfigurationError(
                "a GPG key is required (gpg_key or gpg_key_file)"
            )
        return _from_mapping(cls, CONFIG_SECTION_DOWNLOADER, mapping, **overrides)


@dataclass
class CacheConfig:
    """
    Settings for the caching downloader.

    Timeouts are in seconds: 0 disables caching of that entry kind, a negative
    value means entries never expire.
    """

    cache_directory: Optional[str] = None
    allow_stale: bool = False
    api_cache_timeout: float = DEFAULT_API_CACHE_TIMEOUT
    artifact_cache_timeout: float = DEFAULT_ARTIFACT_CACHE_TIMEOUT

    def __post_init__(self) -> None:
        if self.cache_directory is None:
            self.cache_directory = default_cache_directory()
        _validate_timeout("api_cache_timeout", self.api_cache_timeout)
        _validate_timeout("artifact_cache_timeout", self.artifact_cache_timeout)

    @property
    def disabled(self) -> bool:
        return self.api_cache_timeout == 0 and self.artifact_cache_timeout == 0

    @classmethod
    def from_mapping(cls, mapping: Optional[Dict[str, Any]], **overrides) -> "CacheConfig":
        return _from_mapping(cls, CONFIG_SECTION_CACHE, mapping, **overrides)


@dataclass
class MirrorConfig:
    """
    Settings for a mirror.

    Timeouts only apply in pull-through mode. `gpg_key` optionally overrides
    the upstream key for verify_artifact.
    """

    allow_stale: bool = False
    api_cache_timeout: float = DEFAULT_API_CACHE_TIMEOUT
    artifact_cache_timeout: float = DEFAULT_ARTIFACT_CACHE_TIMEOUT
    gpg_key: Optional[str] = None

    def __post_init__(self) -> None:
        _validate_timeout("api_cache_timeout", self.api_cache_timeout)
        _validate_timeout("artifact_cache_timeout", self.artifact_cache_timeout)

    @classmethod
    def from_mapping(
        cls, mapping: Optional[Dict[str, Any]], **overrides
    ) -> "MirrorConfig":
        mapping = dict(mapping or {})
        key_file = mapping.pop("gpg_key_file", None)
        if key_file and not mapping.get("gpg_key"):
            mapping["gpg_key"] = read_gpg_key_file(key_file)
        return _from_mapping(cls, CONFIG_SECTION_MIRROR, mapping, **overrides)


def read_gpg_key_file(path: Union[str, Path]) -> str:
    """
    Read an ASCII-armored key file.

    Raises:
        ConfigFileError: If the file cannot be read.
    """
    try:
        with open(os.path.expanduser(str(path)), "r", encoding="utf-8") as f:
            return f.read()
    except OSError as e:
        raise ConfigFileError("cannot read GPG key file", str(path), str(e)) from e


def load_config_file(path: Optional[Union[str, Path]] = None) -> Dict[str, Dict[str, Any]]:
    """
    Load the YAML configuration file.

    Parameters:
        path (Optional[Union[str, Path]]): File to read. When omitted the per-user
            default location is used, and a missing file yields empty sections.

    Returns:
        Dict[str, Dict[str, Any]]: One mapping per section (downloader, cache, mirror).

    Raises:
        ConfigFileError: If the file cannot be read, is not valid YAML, or has an unexpected shape.
    """
    explicit = path is not None
    config_path = str(path) if explicit else default_config_file()
    sections: Dict[str, Dict[str, Any]] = {name: {} for name in CONFIG_SECTIONS}

    if not explicit and not os.path.exists(config_path):
        return sections

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigFileError("cannot read config file", config_path, str(e)) from e
    except yaml.YAMLError as e:
        raise ConfigFileError("invalid YAML in config file", config_path, str(e)) from e

    if data is None:
        return sections
    if not isinstance(data, dict):
        raise ConfigFileError("config file must contain a mapping", config_path)

    for key, value in data.items():
        if key not in sections:
            raise ConfigFileError("unknown config file section", config_path, str(key))
        if value is None:
            continue
        if not isinstance(value, dict):
            raise ConfigFileError(
                f"config file section {key} must be a mapping", config_path
            )
        sections[key] = value

    logger.debug(f"Loaded configuration from {config_path}")
    return sections
