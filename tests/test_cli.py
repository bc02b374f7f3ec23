"""
Tests for the tofudl command-line interface.
"""

import os
import stat

import pytest

from tofudl import cli
from tofudl.download.caching import CachingDownloader
from tofudl.download.interfaces import DownloadOptions
from tofudl.download.mirror import Mirror
from tofudl.download.targets import Architecture, Platform
from tofudl.download.version import Version, VersionWithArtifacts
from tofudl.exceptions import RequestFailedError

pytestmark = [pytest.mark.unit, pytest.mark.user_interface]

LISTING = [
    VersionWithArtifacts(Version("1.9.0"), ["tofu_1.9.0_linux_amd64.tar.gz"]),
    VersionWithArtifacts(Version("1.8.0"), ["tofu_1.8.0_linux_amd64.tar.gz"]),
]


@pytest.fixture
def key_file(tmp_path):
    path = tmp_path / "key.asc"
    path.write_text("-----BEGIN PGP PUBLIC KEY BLOCK-----\n")
    return str(path)


@pytest.fixture
def http_downloader(mocker):
    """Replace the live downloader class; the CLI gets its return_value."""
    downloader_cls = mocker.patch("tofudl.cli.HTTPDownloader")
    downloader = downloader_cls.return_value
    downloader.download.return_value = b"tofu binary"
    downloader.download_nightly.return_value = b"nightly binary"
    downloader.list_versions.return_value = list(LISTING)
    downloader.download_artifact.return_value = b"artifact"
    return downloader


def test_no_command_prints_help(capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.main([])
    assert exc_info.value.code == 1
    assert "usage:" in capsys.readouterr().out


def test_download_writes_executable(tmp_path, key_file, http_downloader):
    output = tmp_path / "bin" / "tofu"

    cli.main(
        [
            "download",
            "--gpg-key-file",
            key_file,
            "--platform",
            "linux",
            "--arch",
            "amd64",
            "--version",
            "1.9.0",
            "-o",
            str(output),
        ]
    )

    assert output.read_bytes() == b"tofu binary"
    assert stat.S_IMODE(os.stat(output).st_mode) == 0o755
    options = http_downloader.download.call_args.args[0]
    assert options == DownloadOptions(
        platform=Platform.LINUX, architecture=Architecture.AMD64, version="1.9.0"
    )
    assert os.listdir(output.parent) == ["tofu"]


def test_download_defaults_to_binary_name(tmp_path, key_file, http_downloader, monkeypatch):
    monkeypatch.chdir(tmp_path)

    cli.main(["download", "--gpg-key-file", key_file, "--platform", "windows"])

    assert (tmp_path / "tofu.exe").read_bytes() == b"tofu binary"


def test_download_nightly(tmp_path, key_file, http_downloader):
    output = tmp_path / "tofu"

    cli.main(
        [
            "download",
            "--gpg-key-file",
            key_file,
            "--nightly-id",
            "20250101-0123456789",
            "-o",
            str(output),
        ]
    )

    assert output.read_bytes() == b"nightly binary"
    http_downloader.download.assert_not_called()
    options = http_downloader.download_nightly.call_args.args[0]
    assert str(options.nightly_id) == "20250101-0123456789"


def test_version_and_stability_are_exclusive(key_file):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(
            [
                "download",
                "--gpg-key-file",
                key_file,
                "--version",
                "1.9.0",
                "--stability",
                "beta",
            ]
        )
    assert exc_info.value.code == 2


def test_missing_gpg_key_fails(http_downloader):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["list"])
    assert exc_info.value.code == 1


def test_download_failure_exits_with_error(tmp_path, key_file, http_downloader):
    http_downloader.download.side_effect = RequestFailedError("offline")

    with pytest.raises(SystemExit) as exc_info:
        cli.main(["download", "--gpg-key-file", key_file, "-o", str(tmp_path / "t")])

    assert exc_info.value.code == 1
    assert not (tmp_path / "t").exists()


def test_list_prints_versions_and_files(key_file, http_downloader, capsys):
    cli.main(["list", "--gpg-key-file", key_file, "--stability", "stable", "--files"])

    out = capsys.readouterr().out.splitlines()
    assert out == [
        "1.9.0",
        "  tofu_1.9.0_linux_amd64.tar.gz",
        "1.8.0",
        "  tofu_1.8.0_linux_amd64.tar.gz",
    ]


def test_list_with_cache_dir_populates_cache(tmp_path, key_file, http_downloader):
    cache_dir = tmp_path / "cache"

    cli.main(["list", "--gpg-key-file", key_file, "--cache-dir", str(cache_dir)])

    assert (cache_dir / "api.json").exists()


def test_build_downloader_wraps_cache(key_file, http_downloader, tmp_path):
    args = cli.build_parser().parse_args(
        ["list", "--gpg-key-file", key_file, "--cache-dir", str(tmp_path), "--allow-stale"]
    )
    sections = {"downloader": {}, "cache": {}, "mirror": {}}

    downloader = cli._build_downloader(args, sections)

    assert isinstance(downloader, CachingDownloader)
    assert downloader.config.allow_stale


def test_options_read_from_environment(monkeypatch, key_file, http_downloader, mocker):
    config_cls = mocker.spy(cli.DownloaderConfig, "from_mapping")
    monkeypatch.setenv("TOFUDL_GPG_KEY_FILE", key_file)
    monkeypatch.setenv("TOFUDL_API_URL", "https://mirror.test/api.json")

    cli.main(["list"])

    assert config_cls.call_args.kwargs["api_url"] == "https://mirror.test/api.json"


def test_prewarm_requires_cache_dir(key_file):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["prewarm", "--gpg-key-file", key_file])
    assert exc_info.value.code == 2


def test_prewarm_fills_cache(tmp_path, key_file, http_downloader):
    cache_dir = tmp_path / "cache"

    cli.main(
        [
            "prewarm",
            "--gpg-key-file",
            key_file,
            "--cache-dir",
            str(cache_dir),
            "--versions",
            "1",
        ]
    )

    assert (cache_dir / "v1.9.0" / "tofu_1.9.0_linux_amd64.tar.gz").read_bytes() == b"artifact"
    assert not (cache_dir / "v1.8.0").exists()


def test_serve_origin_mirror(tmp_path, mocker):
    serve = mocker.patch("tofudl.cli.serve")

    cli.main(["serve", "--mirror-dir", str(tmp_path / "mirror"), "--port", "9000"])

    mirror = serve.call_args.args[0]
    assert isinstance(mirror, Mirror)
    assert mirror.is_origin
    assert serve.call_args.kwargs == {"host": "127.0.0.1", "port": 9000}


def test_serve_pull_through(tmp_path, key_file, http_downloader, mocker):
    serve = mocker.patch("tofudl.cli.serve")

    cli.main(
        [
            "serve",
            "--mirror-dir",
            str(tmp_path / "mirror"),
            "--pull-through",
            "--allow-stale",
            "--gpg-key-file",
            key_file,
        ]
    )

    mirror = serve.call_args.args[0]
    assert mirror.upstream is http_downloader
    assert mirror.config.allow_stale


def test_invalid_config_file_exits(tmp_path, key_file):
    config = tmp_path / "tofudl.yaml"
    config.write_text("nonsense:\n  a: 1\n")

    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--config", str(config), "list", "--gpg-key-file", key_file])
    assert exc_info.value.code == 1


def test_log_options(key_file, http_downloader, mocker):
    set_level = mocker.patch("tofudl.cli.log_utils.set_log_level")
    add_file = mocker.patch("tofudl.cli.log_utils.add_file_logging")

    cli.main(["--log-level", "DEBUG", "--log-file", "list", "--gpg-key-file", key_file])

    set_level.assert_called_once_with("DEBUG")
    assert add_file.call_args.args[1] == "DEBUG"


def test_numeric_options_read_from_environment(monkeypatch, key_file):
    monkeypatch.setenv("TOFUDL_TIMEOUT", "12.5")
    monkeypatch.setenv("TOFUDL_PORT", "9100")
    parser = cli.build_parser()

    assert parser.parse_args(["list", "--gpg-key-file", key_file]).timeout == 12.5
    assert parser.parse_args(["serve", "--mirror-dir", "m"]).port == 9100


@pytest.mark.parametrize(
    "variable, argv",
    [
        ("TOFUDL_TIMEOUT", ["list"]),
        ("TOFUDL_PORT", ["serve", "--mirror-dir", "m"]),
    ],
)
def test_invalid_numeric_environment_exits_cleanly(monkeypatch, capsys, variable, argv):
    monkeypatch.setenv(variable, "soon")

    with pytest.raises(SystemExit) as exc_info:
        cli.main(argv)

    assert exc_info.value.code == 2
    assert "invalid" in capsys.readouterr().err
