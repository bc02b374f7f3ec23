import os
import shutil
import tempfile
import time
from types import SimpleNamespace

import platformdirs
import pytest
import requests

_NETWORK_BLOCK_MSG = (
    "Network access is blocked during tests. Pass a fake session or mock Session.request."
)

TEST_API_URL = "https://mirror.test/tofu/api.json"
TEST_MIRROR_URL_TEMPLATE = "https://mirror.test/tofu/v{version}/{artifact}"
TEST_BINARY = b"#!/bin/sh\necho 'OpenTofu test binary'\n"
TEST_WINDOWS_BINARY = b"MZ fake windows binary"


def _block_network(*_args, **_kwargs):
    """
    Prevent network calls in tests by raising a RuntimeError.

    Raises:
        RuntimeError: with `_NETWORK_BLOCK_MSG` indicating that network access is blocked during tests.
    """
    raise RuntimeError(_NETWORK_BLOCK_MSG)


def pytest_configure(config):
    """
    Register the markers used across the test suite.

    Parameters:
        config: pytest.Config
            The pytest configuration object.
    """
    for marker, description in (
        ("unit", "fast isolated tests"),
        ("integration", "tests combining several components"),
        ("core_downloads", "download, verification and caching tests"),
        ("mirror", "mirror and HTTP surface tests"),
        ("user_interface", "CLI tests"),
        ("infrastructure", "configuration and logging tests"),
        ("gpg", "tests that need the gpg executable"),
    ):
        config.addinivalue_line("markers", f"{marker}: {description}")


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Point platformdirs and TOFUDL_* environment variables at an isolated temporary layout.
    """
    base = tmp_path_factory.mktemp("tofudl")
    cache_dir = base / "cache"
    config_dir = base / "config"
    log_dir = base / "log"

    for path in (cache_dir, config_dir, log_dir):
        path.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("XDG_CACHE_HOME", str(cache_dir))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_dir))
    monkeypatch.setattr(
        platformdirs, "user_cache_dir", lambda *_args, **_kwargs: str(cache_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda *_args, **_kwargs: str(config_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_log_dir", lambda *_args, **_kwargs: str(log_dir)
    )

    for name in list(os.environ):
        if name.startswith("TOFUDL_"):
            monkeypatch.delenv(name, raising=False)


def pytest_runtest_setup():
    """
    Prevent real network requests during tests by replacing requests entry points with blocking callables.

    aiohttp is left alone: the mirror HTTP tests run a local aiohttp server.
    """
    requests.get = _block_network
    requests.post = _block_network
    requests.head = _block_network
    requests.Session.request = _block_network


@pytest.fixture(autouse=True)
def _mock_time_sleep(monkeypatch):
    """
    Make time.sleep instant for all tests to prevent delays.
    """
    monkeypatch.setattr(time, "sleep", lambda *_args, **_kwargs: None)


# =============================================================================
# Fake HTTP session
# =============================================================================


class FakeResponse:
    """Minimal stand-in for a streamed requests.Response."""

    def __init__(self, status_code=200, body=b""):
        self.status_code = status_code
        self._body = body
        self.closed = False

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self._body), chunk_size):
            yield self._body[start : start + chunk_size]

    def close(self):
        self.closed = True


class FakeSession:
    """
    Session routing GET requests to canned responses.

    Route values may be bytes (200), an int status code, an exception
    instance to raise, or a callable returning one of those.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requests = []

    def get(self, url, headers=None, timeout=None, stream=False):
        self.requests.append(SimpleNamespace(url=url, headers=headers or {}, timeout=timeout))
        route = self.routes.get(url, 404)
        if callable(route):
            route = route()
        if isinstance(route, Exception):
            raise route
        if isinstance(route, int):
            return FakeResponse(status_code=route)
        return FakeResponse(body=route)

    def urls(self):
        return [request.url for request in self.requests]


@pytest.fixture
def fake_session():
    """Provide an empty FakeSession; tests fill in `routes`."""
    return FakeSession()


def routes_for_mirror(mirror, api_url=TEST_API_URL, template=TEST_MIRROR_URL_TEMPLATE):
    """Build FakeSession routes serving the listing and every artifact of `mirror`."""
    from tofudl.download.version import encode_api_document

    versions = mirror.list_versions()
    routes = {api_url: encode_api_document(versions)}
    for version in versions:
        for artifact_name in version.files:
            url = template.format(version=version.id, artifact=artifact_name)
            routes[url] = mirror.download_artifact(version, artifact_name)
    return routes


@pytest.fixture
def mirror_routes():
    """Expose routes_for_mirror to tests."""
    return routes_for_mirror


# =============================================================================
# GPG fixtures
# =============================================================================


def _generate_keypair(name):
    import gnupg

    # Short home path keeps the gpg-agent socket path under the OS limit
    home = tempfile.mkdtemp(prefix="tofudl-test-")
    gpg = gnupg.GPG(gnupghome=home)
    key_input = gpg.gen_key_input(
        key_type="RSA",
        key_length=2048,
        name_real=name,
        name_email="release@example.com",
        no_protection=True,
    )
    key = gpg.gen_key(key_input)
    if not key.fingerprint:
        shutil.rmtree(home, ignore_errors=True)
        pytest.skip(f"gpg could not generate a test key: {key.stderr}")
    keys = SimpleNamespace(
        fingerprint=key.fingerprint,
        public=gpg.export_keys(key.fingerprint),
        private=gpg.export_keys(
            key.fingerprint, secret=True, expect_passphrase=False
        ),
    )
    return home, keys


@pytest.fixture(scope="session")
def gpg_keys():
    """Session-wide signing key pair (ASCII-armored public and private keys)."""
    if shutil.which("gpg") is None:
        pytest.skip("gpg executable not available")
    home, keys = _generate_keypair("tofudl test release key")
    yield keys
    shutil.rmtree(home, ignore_errors=True)


@pytest.fixture(scope="session")
def other_gpg_keys():
    """A second, unrelated key pair."""
    if shutil.which("gpg") is None:
        pytest.skip("gpg executable not available")
    home, keys = _generate_keypair("tofudl unrelated key")
    yield keys
    shutil.rmtree(home, ignore_errors=True)


# =============================================================================
# Mirror fixtures
# =============================================================================


@pytest.fixture
def origin_mirror(tmp_path):
    """An empty origin mirror stored under tmp_path."""
    from tofudl.download.cache import FilesystemStorage
    from tofudl.download.mirror import Mirror

    return Mirror(FilesystemStorage(str(tmp_path / "mirror")))


@pytest.fixture
def published_release(gpg_keys, origin_mirror):
    """
    Publish version 1.9.0 (linux/amd64 and windows/amd64) to an origin mirror.

    Returns:
        SimpleNamespace: mirror, version string, and the packaged binaries.
    """
    from tofudl.download.release_builder import ReleaseBuilder
    from tofudl.download.targets import Architecture, Platform

    builder = ReleaseBuilder(gpg_keys.private)
    builder.package_binary(
        Platform.LINUX,
        Architecture.AMD64,
        TEST_BINARY,
        extra_files={"LICENSE": b"MPL-2.0\n"},
    )
    builder.package_binary(Platform.WINDOWS, Architecture.AMD64, TEST_WINDOWS_BINARY)
    builder.build("1.9.0", origin_mirror)
    return SimpleNamespace(
        mirror=origin_mirror,
        version="1.9.0",
        binary=TEST_BINARY,
        windows_binary=TEST_WINDOWS_BINARY,
    )


@pytest.fixture
def downloader_config_factory(gpg_keys):
    """Build DownloaderConfig objects pointing at the test endpoints."""
    from tofudl.config import DownloaderConfig

    def _create(session, **overrides):
        values = {
            "gpg_key": gpg_keys.public,
            "api_url": TEST_API_URL,
            "download_mirror_url_template": TEST_MIRROR_URL_TEMPLATE,
            "session": session,
        }
        values.update(overrides)
        return DownloaderConfig(**values)

    return _create
