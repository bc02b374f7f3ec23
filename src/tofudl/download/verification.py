"""
Artifact Verification

Detached-signature checks of checksum manifests, SHA-256 matching of
artifacts against those manifests, and bounded extraction of the binary from
a release archive.
"""

import io
import os
import shutil
import tarfile
import tempfile
import weakref
import zlib
from typing import List, Optional

import gnupg

from tofudl.constants import DEFAULT_CHUNK_SIZE, MAXIMUM_UNCOMPRESSED_FILE_SIZE
from tofudl.exceptions import (
    ArtifactCorruptedError,
    InvalidConfigurationError,
    SignatureError,
)
from tofudl.log_utils import logger
from tofudl.utils import calculate_sha256

from .targets import Platform


class GPGKeyRing:
    """
    A GnuPG key ring holding exactly the keys it was built from.

    Keys are imported into a private temporary GnuPG home so the user's own
    key ring is never consulted or modified. The directory is removed when the
    key ring is garbage collected or close() is called.
    """

    def __init__(self, armored_key: str, passphrase: Optional[str] = None):
        """
        Import an ASCII-armored key (public, or private for signing).

        Parameters:
            armored_key (str): The ASCII-armored key block.
            passphrase (Optional[str]): Passphrase of a protected private key.

        Raises:
            InvalidConfigurationError: If the key cannot be imported.
        """
        if not armored_key or not armored_key.strip():
            raise InvalidConfigurationError("no GPG key provided")

        # Short prefix under the system temp dir keeps the agent socket path valid
        self._home = tempfile.mkdtemp(prefix="tofudl-gpg-")
        self._finalizer = weakref.finalize(
            self, shutil.rmtree, self._home, ignore_errors=True
        )
        self._passphrase = passphrase

        try:
            self._gpg = gnupg.GPG(gnupghome=self._home)
        except (OSError, ValueError, RuntimeError) as e:
            self.close()
            raise InvalidConfigurationError(
                "cannot initialize GnuPG", details=str(e)
            ) from e

        result = self._gpg.import_keys(armored_key)
        fingerprints = [fp for fp in (result.fingerprints or []) if fp]
        if not fingerprints:
            self.close()
            raise InvalidConfigurationError(
                "failed to import GPG key", details=getattr(result, "stderr", None)
            )
        self.fingerprints = tuple(dict.fromkeys(fingerprints))
        logger.debug(f"Imported GPG key(s) {', '.join(self.fingerprints)}")

    def close(self) -> None:
        """Remove the temporary GnuPG home."""
        self._finalizer()

    def verify_detached(self, data: bytes, signature: bytes) -> None:
        """
        Verify a detached signature over `data`.

        Raises:
            SignatureError: If the signature is not a valid signature by a key in this ring.
        """
        fd, sig_path = tempfile.mkstemp(dir=self._home, suffix=".sig")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(signature)
            verified = self._gpg.verify_data(sig_path, data)
        finally:
            try:
                os.remove(sig_path)
            except OSError as e:
                logger.debug(f"Could not remove temporary signature file: {e}")

        if not verified.valid:
            raise SignatureError(
                "Signature verification failed",
                details=verified.status or "no valid signature",
            )

    def sign_detached(self, data: bytes) -> bytes:
        """
        Produce a binary detached signature over `data` with the first imported key.

        Raises:
            SignatureError: If signing fails, for example because only a public key was imported.
        """
        signed = self._gpg.sign(
            data,
            keyid=self.fingerprints[0],
            detach=True,
            binary=True,
            passphrase=self._passphrase,
        )
        if not signed.data:
            raise SignatureError(
                "Signing failed", details=signed.status or signed.stderr
            )
        return signed.data


def _expected_checksums(artifact_name: str, sums: bytes) -> List[str]:
    """Return the digest of every manifest line listing `artifact_name`."""
    suffix = "  " + artifact_name
    expected = []
    for line in sums.decode("utf-8", errors="replace").splitlines():
        line = line.strip()
        if line.endswith(suffix):
            expected.append(line.split(" ", 1)[0])
    return expected


def verify_artifact_checksum_only(
    artifact_name: str, artifact: bytes, sums: bytes
) -> None:
    """
    Check an artifact's SHA-256 against a checksum manifest without a signature.

    Raises:
        SignatureError: If the manifest has no entry for the artifact.
        ArtifactCorruptedError: If the checksum does not match.
    """
    expected_sums = _expected_checksums(artifact_name, sums)
    if not expected_sums:
        raise SignatureError(f"No checksum found for artifact {artifact_name}")

    # Every line for the artifact must agree with the computed digest.
    actual = calculate_sha256(artifact)
    for expected in expected_sums:
        if expected != actual:
            raise ArtifactCorruptedError(
                artifact_name, f"invalid checksum, expected {expected} found {actual}"
            )
    logger.debug(f"Checksum verified for {artifact_name}")


def verify_artifact(
    key_ring: GPGKeyRing,
    artifact_name: str,
    artifact: bytes,
    sums: bytes,
    signature: bytes,
) -> None:
    """
    Verify an artifact against a signed checksum manifest.

    The manifest signature is checked first, then the artifact's SHA-256 must
    match the manifest line ending in two spaces and the artifact name.

    Raises:
        SignatureError: If the signature is invalid or the artifact is not listed.
        ArtifactCorruptedError: If the checksum does not match.
    """
    key_ring.verify_detached(sums, signature)
    verify_artifact_checksum_only(artifact_name, artifact, sums)


def extract_binary_from_tar_gz(
    archive_name: str,
    archive: bytes,
    platform: Platform = Platform.LINUX,
    max_size: int = MAXIMUM_UNCOMPRESSED_FILE_SIZE,
) -> bytes:
    """
    Extract the binary from a gzip-compressed tar archive held in memory.

    The first regular file whose name is the platform's binary name is
    returned; all other entries are skipped. At most `max_size` bytes are
    read and an entry reaching that bound is rejected.

    Parameters:
        archive_name (str): Name used in error reports.
        archive (bytes): The .tar.gz contents.
        platform (Platform): Resolved platform; Windows archives carry the .exe binary.
        max_size (int): Upper bound for the binary size in bytes.

    Returns:
        bytes: The binary contents.

    Raises:
        ArtifactCorruptedError: On decompression or tar errors, oversized payloads,
            or when the archive does not contain the binary.
    """
    binary_name = platform.binary_name
    try:
        with tarfile.open(fileobj=io.BytesIO(archive), mode="r|gz") as tar:
            for member in tar:
                if member.name != binary_name or not member.isreg():
                    continue
                source = tar.extractfile(member)
                if source is None:
                    continue
                return _read_bounded(archive_name, source, max_size)
    except (tarfile.TarError, OSError, EOFError, zlib.error) as e:
        raise ArtifactCorruptedError(archive_name, str(e)) from e

    raise ArtifactCorruptedError(archive_name, f"file named {binary_name} not found")


def _read_bounded(archive_name: str, source, max_size: int) -> bytes:
    buffer = bytearray()
    while len(buffer) < max_size:
        chunk = source.read(min(DEFAULT_CHUNK_SIZE, max_size - len(buffer)))
        if not chunk:
            return bytes(buffer)
        buffer.extend(chunk)
    raise ArtifactCorruptedError(
        archive_name, f"artifact too large (larger than {max_size} bytes)"
    )
