# src/tofudl/cli.py

import argparse
import os
import sys
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import platformdirs
from rich.progress import BarColumn, Progress, TextColumn

from tofudl import log_utils
from tofudl.config import (
    CacheConfig,
    DownloaderConfig,
    MirrorConfig,
    load_config_file,
    read_gpg_key_file,
)
from tofudl.constants import (
    CACHE_APP_NAME,
    CLI_BINARY_NAME,
    CLI_ENV_PREFIX,
    DEFAULT_MIRROR_HOST,
    DEFAULT_MIRROR_PORT,
    EXECUTABLE_PERMISSIONS,
    PRODUCT_NAME,
)
from tofudl.download.cache import FilesystemStorage
from tofudl.download.caching import CachingDownloader
from tofudl.download.downloader import HTTPDownloader
from tofudl.download.interfaces import (
    Downloader,
    DownloadOptions,
    ListVersionsOptions,
)
from tofudl.download.mirror import Mirror
from tofudl.download.server import serve
from tofudl.exceptions import OperationCancelledError, TofuDLError


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    """Read a TOFUDL_-prefixed environment variable."""
    value = os.environ.get(CLI_ENV_PREFIX + name)
    return value if value not in (None, "") else default


def _add_downloader_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--gpg-key-file",
        default=_env("GPG_KEY_FILE"),
        help=f"ASCII-armored public key used to verify releases (env: {CLI_ENV_PREFIX}GPG_KEY_FILE)",
    )
    parser.add_argument(
        "--api-url",
        default=_env("API_URL"),
        help=f"URL of the version listing (env: {CLI_ENV_PREFIX}API_URL)",
    )
    parser.add_argument(
        "--api-authorization",
        default=_env("API_AUTHORIZATION"),
        help=f"Authorization header for the API (env: {CLI_ENV_PREFIX}API_AUTHORIZATION)",
    )
    parser.add_argument(
        "--mirror-url-template",
        default=_env("MIRROR_URL_TEMPLATE"),
        help="Download URL template with {version} and {artifact} placeholders "
        f"(env: {CLI_ENV_PREFIX}MIRROR_URL_TEMPLATE)",
    )
    parser.add_argument(
        "--mirror-authorization",
        default=_env("MIRROR_AUTHORIZATION"),
        help=f"Authorization header for the download mirror (env: {CLI_ENV_PREFIX}MIRROR_AUTHORIZATION)",
    )
    # argparse applies `type` to string defaults, so env values are validated too.
    parser.add_argument(
        "--timeout",
        type=float,
        default=_env("TIMEOUT"),
        help=f"Request timeout in seconds (env: {CLI_ENV_PREFIX}TIMEOUT)",
    )


def _add_cache_arguments(parser: argparse.ArgumentParser, required: bool = False) -> None:
    parser.add_argument(
        "--cache-dir",
        default=_env("CACHE_DIR"),
        required=required and _env("CACHE_DIR") is None,
        help=f"Cache directory (env: {CLI_ENV_PREFIX}CACHE_DIR)",
    )
    parser.add_argument(
        "--allow-stale",
        action="store_true",
        default=None,
        help="Serve stale cache entries when the live source is unreachable",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=CLI_BINARY_NAME,
        description=f"{CLI_BINARY_NAME} - {PRODUCT_NAME} downloader, cache and mirror",
    )
    parser.add_argument(
        "--config",
        default=_env("CONFIG"),
        help=f"YAML configuration file (env: {CLI_ENV_PREFIX}CONFIG)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--log-file",
        action="store_true",
        help="Also write a rotating log file to the per-user log directory",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Download a binary
    download_parser = subparsers.add_parser(
        "download", help=f"Download, verify and extract the {PRODUCT_NAME} binary"
    )
    _add_downloader_arguments(download_parser)
    _add_cache_arguments(download_parser)
    download_parser.add_argument(
        "--platform",
        default=_env("PLATFORM", ""),
        help=f"Target platform, detected when empty (env: {CLI_ENV_PREFIX}PLATFORM)",
    )
    download_parser.add_argument(
        "--arch",
        dest="architecture",
        default=_env("ARCH", ""),
        help=f"Target architecture, detected when empty (env: {CLI_ENV_PREFIX}ARCH)",
    )
    selection_group = download_parser.add_mutually_exclusive_group()
    selection_group.add_argument(
        "--version",
        dest="version",
        default=_env("VERSION"),
        help=f"Exact version to download (env: {CLI_ENV_PREFIX}VERSION)",
    )
    selection_group.add_argument(
        "--stability",
        default=_env("STABILITY"),
        help=f"Minimum stability: alpha, beta, rc or stable (env: {CLI_ENV_PREFIX}STABILITY)",
    )
    selection_group.add_argument(
        "--nightly",
        action="store_true",
        help="Download the latest nightly build instead of a release",
    )
    download_parser.add_argument(
        "--nightly-id",
        default=_env("NIGHTLY_ID"),
        help="Nightly build ID (YYYYMMDD-xxxxxxxxxx); implies --nightly",
    )
    download_parser.add_argument(
        "--output",
        "-o",
        default=_env("OUTPUT"),
        help="Where to write the binary (default: the binary name in the current directory)",
    )

    # List versions
    list_parser = subparsers.add_parser("list", help="List available versions")
    _add_downloader_arguments(list_parser)
    _add_cache_arguments(list_parser)
    list_parser.add_argument(
        "--stability",
        default=_env("STABILITY"),
        help="Minimum stability: alpha, beta, rc or stable",
    )
    list_parser.add_argument(
        "--files", action="store_true", help="Also list the artifacts of each version"
    )

    # Fill a cache
    prewarm_parser = subparsers.add_parser(
        "prewarm", help="Download all artifacts of recent versions into the cache"
    )
    _add_downloader_arguments(prewarm_parser)
    _add_cache_arguments(prewarm_parser, required=True)
    prewarm_parser.add_argument(
        "--versions",
        type=int,
        default=0,
        help="Number of newest versions to prewarm (0 for all)",
    )

    # Serve a mirror
    serve_parser = subparsers.add_parser("serve", help="Serve a mirror over HTTP")
    _add_downloader_arguments(serve_parser)
    serve_parser.add_argument(
        "--mirror-dir",
        default=_env("MIRROR_DIR"),
        required=_env("MIRROR_DIR") is None,
        help=f"Mirror storage directory (env: {CLI_ENV_PREFIX}MIRROR_DIR)",
    )
    serve_parser.add_argument(
        "--pull-through",
        action="store_true",
        help="Fetch missing entries from the upstream distribution",
    )
    serve_parser.add_argument(
        "--allow-stale",
        action="store_true",
        default=None,
        help="Serve stale entries when the upstream is unreachable",
    )
    serve_parser.add_argument("--host", default=_env("HOST", DEFAULT_MIRROR_HOST))
    serve_parser.add_argument(
        "--port", type=int, default=_env("PORT", str(DEFAULT_MIRROR_PORT))
    )
    return parser


def _build_downloader_config(
    args: argparse.Namespace, sections: Dict[str, Dict[str, Any]]
) -> DownloaderConfig:
    return DownloaderConfig.from_mapping(
        sections["downloader"],
        gpg_key_file=args.gpg_key_file,
        api_url=args.api_url,
        api_authorization=args.api_authorization,
        download_mirror_url_template=args.mirror_url_template,
        download_mirror_authorization=args.mirror_authorization,
        request_timeout=args.timeout,
    )


def _build_downloader(
    args: argparse.Namespace, sections: Dict[str, Dict[str, Any]]
) -> Downloader:
    """Build the live downloader, wrapped in a cache when a cache directory is configured."""
    downloader = HTTPDownloader(_build_downloader_config(args, sections))
    cache_dir = getattr(args, "cache_dir", None) or sections["cache"].get(
        "cache_directory"
    )
    if not cache_dir:
        return downloader
    cache_config = CacheConfig.from_mapping(
        sections["cache"], cache_directory=cache_dir, allow_stale=args.allow_stale
    )
    if cache_config.disabled:
        return downloader
    return CachingDownloader.from_config(downloader, cache_config)


def write_binary(path: str, contents: bytes) -> None:
    """Write the binary atomically and mark it executable."""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    temp_fd, temp_path = tempfile.mkstemp(dir=directory, prefix="tmp-", suffix=".part")
    try:
        with os.fdopen(temp_fd, "wb") as temp_f:
            temp_f.write(contents)
        os.chmod(temp_path, EXECUTABLE_PERMISSIONS)
        os.replace(temp_path, path)
    finally:
        if os.path.exists(temp_path):
            os.remove(temp_path)


def _run_download(args: argparse.Namespace, sections: Dict[str, Dict[str, Any]]) -> None:
    downloader = _build_downloader(args, sections)
    options = DownloadOptions(
        platform=args.platform,
        architecture=args.architecture,
        version=None if args.nightly else args.version,
        minimum_stability=None if args.nightly else args.stability,
        nightly_id=args.nightly_id,
    )
    if args.nightly or args.nightly_id:
        binary = downloader.download_nightly(options)
    else:
        binary = downloader.download(options)

    output = args.output or options.platform.resolve().binary_name
    write_binary(output, binary)
    log_utils.logger.info(f"Wrote {len(binary)} bytes to {output}")


def _run_list(args: argparse.Namespace, sections: Dict[str, Dict[str, Any]]) -> None:
    downloader = _build_downloader(args, sections)
    versions = downloader.list_versions(
        ListVersionsOptions(minimum_stability=args.stability)
    )
    for version in versions:
        print(version.id)
        if args.files:
            for artifact_name in version.files:
                print(f"  {artifact_name}")


def _run_prewarm(args: argparse.Namespace, sections: Dict[str, Dict[str, Any]]) -> None:
    downloader = _build_downloader(args, sections)
    if not isinstance(downloader, CachingDownloader):
        raise TofuDLError("prewarm requires a cache directory")

    cancel_event = threading.Event()
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
    ) as progress:
        task = progress.add_task("Prewarming cache", total=100)
        try:
            downloader.prewarm(
                args.versions,
                progress=lambda pct: progress.update(task, completed=pct),
                cancel_event=cancel_event,
            )
        except KeyboardInterrupt:
            cancel_event.set()
            raise OperationCancelledError("prewarm") from None
    log_utils.logger.info("Prewarm complete")


def _run_serve(args: argparse.Namespace, sections: Dict[str, Dict[str, Any]]) -> None:
    mirror_config = MirrorConfig.from_mapping(
        sections["mirror"], allow_stale=args.allow_stale
    )
    upstream = None
    if args.pull_through:
        upstream = HTTPDownloader(_build_downloader_config(args, sections))
    elif args.gpg_key_file and not mirror_config.gpg_key:
        mirror_config.gpg_key = read_gpg_key_file(args.gpg_key_file)
    mirror = Mirror(FilesystemStorage(args.mirror_dir), upstream, mirror_config)
    serve(mirror, host=args.host, port=args.port)


COMMANDS = {
    "download": _run_download,
    "list": _run_list,
    "prewarm": _run_prewarm,
    "serve": _run_serve,
}


def main(argv=None):
    """
    Entry point for the tofudl command-line interface.

    Parses command-line arguments, loads the optional YAML configuration file
    and dispatches the download, list, prewarm and serve subcommands. Exits
    with status 1 on any tofudl error.
    """
    # Logging is automatically initialized by importing log_utils
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.log_level:
        log_utils.set_log_level(args.log_level)
    if args.log_file:
        log_utils.add_file_logging(
            Path(platformdirs.user_log_dir(CACHE_APP_NAME)), args.log_level or "INFO"
        )

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        sections = load_config_file(args.config)
        COMMANDS[args.command](args, sections)
    except TofuDLError as e:
        log_utils.logger.error(str(e))
        sys.exit(1)
    except OSError as e:
        log_utils.logger.error(f"I/O error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
