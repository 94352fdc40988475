"""On-disk format and durable storage for secret stores.

Store file layout (big-endian):
    magic     : 4 bytes   -> b"GPST"
    version   : 1 byte    -> 0x01
    kdf       : 1 byte    -> 0x01 (scrypt)
    n         : u32       scrypt CPU/memory cost
    r         : u32       scrypt block size
    p         : u32       scrypt parallelization
    salt      : 16 bytes
    nonce     : 12 bytes
    ciphertext: remaining bytes (AES-256-GCM, 16-byte tag appended)

The packed header is also the AEAD associated data, so any change to the
header makes decryption fail.
"""

import os
import struct
import sys
from dataclasses import dataclass
from pathlib import Path

from .crypto import KDF_SCRYPT, NONCE_SIZE, SALT_SIZE, TAG_SIZE, KdfParams
from .exceptions import (
    AlreadyOpenError,
    CorruptHeaderError,
    StorageError,
    StoreNotFoundError,
    UnsupportedVersionError,
)
from ..utils.logging import get_logger

logger = get_logger(__name__)

STORE_MAGIC = b"GPST"
STORE_VERSION = 1
HEADER_FMT = f">4sBBIII{SALT_SIZE}s{NONCE_SIZE}s"
HEADER_SIZE = struct.calcsize(HEADER_FMT)


@dataclass
class StoreHeader:
    """Fixed-width header preceding the ciphertext."""

    salt: bytes
    nonce: bytes
    kdf: KdfParams
    version: int = STORE_VERSION

    def pack(self) -> bytes:
        """Serialize to HEADER_SIZE bytes."""
        return struct.pack(
            HEADER_FMT,
            STORE_MAGIC,
            self.version,
            self.kdf.kdf,
            self.kdf.n,
            self.kdf.r,
            self.kdf.p,
            self.salt,
            self.nonce,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "StoreHeader":
        """
        Parse a header from the start of data.

        Raises:
            CorruptHeaderError: Truncated data, bad magic or unknown KDF
            UnsupportedVersionError: Format version is not supported
        """
        if len(data) < HEADER_SIZE:
            raise CorruptHeaderError("Secret store is too small or corrupt.")
        magic, version, kdf, n, r, p, salt, nonce = struct.unpack(HEADER_FMT, data[:HEADER_SIZE])
        if magic != STORE_MAGIC:
            raise CorruptHeaderError("Invalid secret store magic.")
        if version != STORE_VERSION:
            raise UnsupportedVersionError(version)
        if kdf != KDF_SCRYPT:
            raise CorruptHeaderError(f"Unknown key derivation function id: {kdf}")
        return cls(salt=salt, nonce=nonce, kdf=KdfParams(n=n, r=r, p=p, kdf=kdf), version=version)


def pack_store(header: StoreHeader, ciphertext: bytes) -> bytes:
    """Concatenate header and ciphertext into a single blob."""
    return header.pack() + ciphertext


def unpack_store(blob: bytes) -> tuple[StoreHeader, bytes]:
    """
    Split a blob into header and ciphertext.

    Raises:
        CorruptHeaderError: If the header is invalid or no tag follows it
        UnsupportedVersionError: If the format version is not supported
    """
    header = StoreHeader.unpack(blob)
    ciphertext = blob[HEADER_SIZE:]
    if len(ciphertext) < TAG_SIZE:
        raise CorruptHeaderError("Secret store is truncated.")
    return header, ciphertext


def envelope_prefix(name: str, header: StoreHeader) -> bytes:
    """
    Build the authenticated prefix of an exported store.

    Layout: name_len (u8) | name (UTF-8) | packed header
    """
    raw_name = name.encode("utf-8")
    if len(raw_name) > 255:
        raise ValueError("Store name too long to export (>255 bytes)")
    return bytes([len(raw_name)]) + raw_name + header.pack()


def pack_envelope(name: str, header: StoreHeader, ciphertext: bytes) -> bytes:
    """Serialize a named store for plainsight export."""
    return envelope_prefix(name, header) + ciphertext


def unpack_envelope(blob: bytes) -> tuple[str, StoreHeader, bytes]:
    """
    Parse an exported store.

    Returns:
        (name, header, ciphertext)

    Raises:
        CorruptHeaderError: If the envelope or header is malformed
        UnsupportedVersionError: If the format version is not supported
    """
    if not blob:
        raise CorruptHeaderError("Exported secret store is empty.")
    name_len = blob[0]
    try:
        name = blob[1:1 + name_len].decode("utf-8")
    except UnicodeDecodeError:
        raise CorruptHeaderError("Exported secret store name is corrupted.") from None
    header, ciphertext = unpack_store(blob[1 + name_len:])
    return name, header, ciphertext


def save(path: Path, header: StoreHeader, ciphertext: bytes) -> None:
    """
    Atomically write a store file.

    Writes to a temp file in the same directory, flushes to stable storage,
    then renames over the target. A crash mid-write leaves the previous
    version intact.

    Raises:
        StorageError: On any disk-level failure
    """
    path = Path(path)
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(pack_store(header, ciphertext))
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
        _fsync_dir(path.parent)
    except OSError as e:
        if tmp.exists():
            tmp.unlink()
        raise StorageError(f"Failed to write secret store {path.name}: {e.strerror or e}") from e

    logger.debug(f"Wrote {path.name} ({HEADER_SIZE + len(ciphertext)} bytes)")


def load(path: Path) -> tuple[StoreHeader, bytes]:
    """
    Read a store file.

    Returns:
        (header, ciphertext) where ciphertext still carries its tag

    Raises:
        StoreNotFoundError: If the file does not exist
        CorruptHeaderError: If magic or structure is invalid
        UnsupportedVersionError: If the format version is not supported
        StorageError: On other read failures
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        raise StoreNotFoundError(path.stem) from None
    except OSError as e:
        raise StorageError(f"Failed to read secret store {path.name}: {e.strerror or e}") from e
    return unpack_store(data)


def secure_delete(path: Path) -> None:
    """
    Overwrite a file with zeros, flush, then delete it.

    Raises:
        StoreNotFoundError: If the file does not exist
        StorageError: On other failures
    """
    path = Path(path)
    try:
        size = path.stat().st_size
        with open(path, "r+b") as f:
            remaining = size
            while remaining > 0:
                chunk = min(remaining, 1024 * 1024)
                f.write(b"\x00" * chunk)
                remaining -= chunk
            f.flush()
            os.fsync(f.fileno())
        path.unlink()
    except FileNotFoundError:
        raise StoreNotFoundError(path.stem) from None
    except OSError as e:
        raise StorageError(f"Failed to delete secret store {path.name}: {e.strerror or e}") from e


def _fsync_dir(directory: Path) -> None:
    """Flush a directory entry so a rename is durable (POSIX only)."""
    if sys.platform.startswith("win"):
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


class StoreLock:
    """
    Exclusive cross-process lock on a store, held via a sidecar lock file.

    Usage:
        lock = StoreLock(store_path)
        lock.acquire()      # raises AlreadyOpenError if held elsewhere
        ...
        lock.release()
    """

    def __init__(self, path: Path, suffix: str = ".lock"):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + suffix)
        self._f = None

    @property
    def locked(self) -> bool:
        """True while this object holds the lock."""
        return self._f is not None

    def acquire(self) -> None:
        """
        Take the lock without blocking.

        Raises:
            AlreadyOpenError: If another process holds the lock
            StorageError: If the lock file cannot be created
        """
        if self._f is not None:
            return
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            f = open(self.lock_path, "a+b")
        except OSError as e:
            raise StorageError(f"Failed to create lock file {self.lock_path.name}: {e.strerror or e}") from e

        try:
            _lock_file(f)
        except OSError:
            f.close()
            raise AlreadyOpenError(self.path.stem) from None

        self._f = f
        logger.debug(f"Acquired lock {self.lock_path.name}")

    def release(self, remove: bool = False) -> None:
        """Release the lock, optionally deleting the lock file."""
        if self._f is None:
            return
        try:
            _unlock_file(self._f)
        finally:
            self._f.close()
            self._f = None
        if remove:
            try:
                self.lock_path.unlink()
            except FileNotFoundError:
                pass
        logger.debug(f"Released lock {self.lock_path.name}")

    def __enter__(self) -> "StoreLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


if sys.platform.startswith("win"):
    import msvcrt

    def _lock_file(f) -> None:
        f.seek(0)
        msvcrt.locking(f.fileno(), msvcrt.LK_NBLCK, 1)

    def _unlock_file(f) -> None:
        f.seek(0)
        msvcrt.locking(f.fileno(), msvcrt.LK_UNLCK, 1)

else:
    import fcntl

    def _lock_file(f) -> None:
        fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)

    def _unlock_file(f) -> None:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
