# src/tofudl/utils.py
import hashlib
import importlib.metadata
import ssl
import time
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry  # type: ignore
from urllib3.util.ssl_ import create_urllib3_context  # type: ignore

from tofudl.constants import (
    CLI_BINARY_NAME,
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CONNECT_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    RETRY_STATUS_FORCELIST,
)
from tofudl.exceptions import RequestFailedError
from tofudl.log_utils import logger

# Cache for the User-Agent string to avoid repeated metadata lookups
_USER_AGENT_CACHE = None


def get_user_agent() -> str:
    """
    Get the User-Agent string used for HTTP requests.

    Returns:
        The string `tofudl/{version}`, where `{version}` is the installed package version or `unknown` if the version cannot be determined.
    """
    global _USER_AGENT_CACHE

    if _USER_AGENT_CACHE is None:
        try:
            app_version = importlib.metadata.version(CLI_BINARY_NAME)
        except importlib.metadata.PackageNotFoundError:
            app_version = "unknown"

        _USER_AGENT_CACHE = f"{CLI_BINARY_NAME}/{app_version}"

    return _USER_AGENT_CACHE


class HardenedTLSAdapter(HTTPAdapter):
    """HTTPAdapter that refuses TLS versions older than 1.3."""

    def init_poolmanager(self, *args, **kwargs):
        context = create_urllib3_context()
        context.minimum_version = ssl.TLSVersion.TLSv1_3
        kwargs["ssl_context"] = context
        return super().init_poolmanager(*args, **kwargs)


def create_session() -> requests.Session:
    """
    Build the default HTTP session for outbound requests.

    The session retries connection failures and transient status codes with
    exponential backoff and only negotiates TLS 1.3 or newer for HTTPS.

    Returns:
        requests.Session: A configured session; the caller owns it.
    """
    retry_strategy: Retry = Retry(
        total=DEFAULT_CONNECT_RETRIES,
        connect=DEFAULT_CONNECT_RETRIES,
        read=DEFAULT_CONNECT_RETRIES,
        status=DEFAULT_CONNECT_RETRIES,
        backoff_factor=DEFAULT_BACKOFF_FACTOR,
        status_forcelist=list(RETRY_STATUS_FORCELIST),
        allowed_methods=frozenset({"GET", "HEAD"}),
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    session = requests.Session()
    session.mount("https://", HardenedTLSAdapter(max_retries=retry_strategy))
    session.mount("http://", HTTPAdapter(max_retries=retry_strategy))
    session.headers["User-Agent"] = get_user_agent()
    return session


def http_get(
    session: requests.Session,
    url: str,
    authorization: Optional[str] = None,
    timeout: Optional[float] = None,
) -> bytes:
    """
    Perform a GET request and return the full response body.

    Parameters:
        session (requests.Session): Session used for the request.
        url (str): URL to fetch.
        authorization (Optional[str]): Value of the Authorization header, if any.
        timeout (Optional[float]): Request timeout in seconds; the module default is used when omitted.

    Returns:
        bytes: The response body.

    Raises:
        RequestFailedError: On transport errors or any status code other than 200.
    """
    headers = {}
    if authorization:
        headers["Authorization"] = authorization

    logger.debug(f"Requesting {url}")
    start_time = time.time()
    try:
        response = session.get(
            url,
            headers=headers,
            timeout=timeout or DEFAULT_REQUEST_TIMEOUT,
            stream=True,
        )
    except requests.RequestException as e:
        raise RequestFailedError(f"request to {url} failed: {e}", url=url) from e

    try:
        if response.status_code != 200:
            raise RequestFailedError(
                f"unexpected status code: {response.status_code}",
                url=url,
                status_code=response.status_code,
            )
        chunks = []
        for chunk in response.iter_content(chunk_size=DEFAULT_CHUNK_SIZE):
            if chunk:
                chunks.append(chunk)
    except requests.RequestException as e:
        raise RequestFailedError(
            f"failed to read response from {url}: {e}", url=url
        ) from e
    finally:
        response.close()

    body = b"".join(chunks)
    logger.debug(
        "Fetched %d bytes from %s in %.2fs", len(body), url, time.time() - start_time
    )
    return body


def calculate_sha256(data: bytes) -> str:
    """
    Compute the SHA-256 hex digest of in-memory data.

    Returns:
        str: The 64-character lowercase hexadecimal digest.
    """
    return hashlib.sha256(data).hexdigest()
