"""
Tests for nightly build identifiers and downloads.
"""

import io
import json
import tarfile

import pytest

from tofudl.download.nightly import (
    NightlyID,
    download_nightly_build,
    fetch_latest_nightly_metadata,
)
from tofudl.download.targets import Architecture, Platform
from tofudl.exceptions import (
    ArtifactCorruptedError,
    InvalidOptionsError,
    RequestFailedError,
    SignatureError,
)
from tofudl.utils import calculate_sha256

pytestmark = [pytest.mark.unit, pytest.mark.core_downloads]

BASE_URL = "https://nightlies.test"
BUILD_ID = "20250101-0123456789"
ARTIFACT = f"tofu_nightly-{BUILD_ID}_linux_amd64.tar.gz"
SUMS = f"tofu_nightly-{BUILD_ID}_SHA256SUMS"


def _archive(binary):
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        info = tarfile.TarInfo("tofu")
        info.size = len(binary)
        tar.addfile(info, io.BytesIO(binary))
    return buffer.getvalue()


@pytest.fixture
def nightly_routes(fake_session):
    archive = _archive(b"nightly binary")
    fake_session.routes.update(
        {
            f"{BASE_URL}/nightlies/latest.json": json.dumps(
                {"date": "20250101", "commit": "0123456789", "version": "1.10.0"}
            ).encode(),
            f"{BASE_URL}/nightlies/20250101/{ARTIFACT}": archive,
            f"{BASE_URL}/nightlies/20250101/{SUMS}": (
                f"{calculate_sha256(archive)}  {ARTIFACT}\n".encode()
            ),
        }
    )
    return fake_session.routes


@pytest.mark.parametrize("raw", ["20250101-0123456789", "20250101-abcdefABCD"])
def test_valid_nightly_ids(raw):
    assert str(NightlyID(raw)) == raw


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "2025-01-01-0123456789",
        "20250101-012345678",
        "20250101-0123456789\n",
        "20250101-zzzzzzzzzz",
    ],
)
def test_invalid_nightly_ids(raw):
    with pytest.raises(InvalidOptionsError):
        NightlyID(raw)


def test_nightly_id_names_and_urls():
    nightly = NightlyID.from_parts("20250101", "0123456789")

    assert nightly.date == "20250101"
    assert nightly.artifact_name(Platform.LINUX, Architecture.AMD64) == ARTIFACT
    assert nightly.sums_file_name == SUMS
    assert nightly.url_for(SUMS, BASE_URL + "/") == f"{BASE_URL}/nightlies/20250101/{SUMS}"


def test_latest_metadata(fake_session, nightly_routes):
    metadata = fetch_latest_nightly_metadata(
        fake_session, f"{BASE_URL}/nightlies/latest.json"
    )
    assert metadata.nightly_id == NightlyID(BUILD_ID)
    assert metadata.version == "1.10.0"


def test_latest_metadata_malformed(fake_session):
    fake_session.routes[f"{BASE_URL}/nightlies/latest.json"] = b'{"date": "20250101"}'
    with pytest.raises(RequestFailedError, match="nightly metadata"):
        fetch_latest_nightly_metadata(fake_session, f"{BASE_URL}/nightlies/latest.json")


def test_download_latest_nightly(fake_session, nightly_routes):
    binary = download_nightly_build(
        fake_session, Platform.LINUX, Architecture.AMD64, base_url=BASE_URL
    )

    assert binary == b"nightly binary"
    assert fake_session.urls()[0].endswith("latest.json")


def test_download_specific_nightly_skips_metadata(fake_session, nightly_routes):
    download_nightly_build(
        fake_session,
        Platform.LINUX,
        Architecture.AMD64,
        nightly_id=NightlyID(BUILD_ID),
        base_url=BASE_URL,
    )
    assert not any(url.endswith("latest.json") for url in fake_session.urls())


def test_tampered_nightly_rejected(fake_session, nightly_routes):
    nightly_routes[f"{BASE_URL}/nightlies/20250101/{ARTIFACT}"] = _archive(b"evil")
    with pytest.raises(ArtifactCorruptedError):
        download_nightly_build(
            fake_session, Platform.LINUX, Architecture.AMD64, base_url=BASE_URL
        )


def test_nightly_missing_from_manifest(fake_session, nightly_routes):
    nightly_routes[f"{BASE_URL}/nightlies/20250101/{SUMS}"] = b""
    with pytest.raises(SignatureError):
        download_nightly_build(
            fake_session, Platform.LINUX, Architecture.AMD64, base_url=BASE_URL
        )


def test_missing_nightly_artifact(fake_session, nightly_routes):
    del nightly_routes[f"{BASE_URL}/nightlies/20250101/{ARTIFACT}"]
    with pytest.raises(RequestFailedError, match=ARTIFACT) as exc_info:
        download_nightly_build(
            fake_session, Platform.LINUX, Architecture.AMD64, base_url=BASE_URL
        )
    assert exc_info.value.status_code == 404
