"""Zeroable secret buffers and the process-wide key guard.

Key material and decrypted field data are held in ``SecretBuffer`` objects,
which are mutable and can be wiped in place. Every live buffer is tracked by
the ``KeyGuard`` so that an interrupt or normal exit can wipe all of them at
once before the process goes away.

Note:
    Python does not let us control every copy the interpreter makes (for
    example, ``str`` values handed to callers). We wipe the buffers we own.
"""

import atexit
import signal
import sys
import threading
import weakref
from typing import Optional, Protocol

from ..utils.logging import get_logger

logger = get_logger(__name__)


class Wipeable(Protocol):
    """Anything that can zero its own secret state."""

    def wipe(self) -> None: ...


class SecretBuffer:
    """
    Mutable byte buffer for secret material that is zeroed on release.

    Usage:
        with SecretBuffer(master_key) as key:
            derived = derive_key(key, salt, params)
        # key bytes are now zero

    The buffer registers itself with the global KeyGuard on creation.
    """

    __slots__ = ("_data", "_wiped", "__weakref__")

    def __init__(self, data: bytes | bytearray | str = b""):
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._data = bytearray(data)
        self._wiped = False
        get_key_guard().track(self)

    @classmethod
    def take(cls, data: bytearray) -> "SecretBuffer":
        """Build a buffer from ``data`` and zero the source bytearray."""
        buf = cls(data)
        _zero(data)
        return buf

    def __enter__(self) -> "SecretBuffer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.wipe()
        return False

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        return len(self._data) > 0

    def __repr__(self) -> str:
        state = "wiped" if self._wiped else f"{len(self._data)} bytes"
        return f"SecretBuffer(<{state}>)"

    @property
    def wiped(self) -> bool:
        """True once the buffer has been zeroed."""
        return self._wiped

    @property
    def value(self) -> bytearray:
        """The underlying mutable bytes (do not keep references)."""
        return self._data

    def decode(self, encoding: str = "utf-8") -> str:
        """Decode the buffer to a string."""
        return self._data.decode(encoding)

    def wipe(self) -> None:
        """Overwrite the buffer with zeros and empty it."""
        _zero(self._data)
        self._data = bytearray()
        self._wiped = True


def _zero(buf: bytearray) -> None:
    """Zero a bytearray in place."""
    for i in range(len(buf)):
        buf[i] = 0


class KeyGuard:
    """
    Process-scope registry of live secret material.

    Buffers are tracked weakly, so dropping the last reference to a buffer
    also drops it from the guard. ``purge()`` wipes everything still alive.
    ``install()`` hooks the purge into interpreter exit and SIGINT/SIGTERM;
    it is meant to be called once from the program's top-level scope.
    """

    _instance: Optional["KeyGuard"] = None
    _lock = threading.Lock()

    def __init__(self):
        """Initialize guard (use get_instance() for the singleton)."""
        self._buffers: "weakref.WeakSet[SecretBuffer]" = weakref.WeakSet()
        self._wipeables: "weakref.WeakSet" = weakref.WeakSet()
        self._guard_lock = threading.RLock()
        self._installed = False
        self._previous_handlers: dict[int, object] = {}

    @classmethod
    def get_instance(cls) -> "KeyGuard":
        """Get singleton key guard instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Purge and reset singleton (for testing)."""
        with cls._lock:
            if cls._instance is not None:
                cls._instance.purge()
                cls._instance.uninstall()
            cls._instance = None

    def track(self, buffer: SecretBuffer) -> None:
        """Track a secret buffer."""
        with self._guard_lock:
            self._buffers.add(buffer)

    def register(self, wipeable: Wipeable) -> None:
        """Track an object holding secrets (e.g. an open store)."""
        with self._guard_lock:
            self._wipeables.add(wipeable)

    def unregister(self, wipeable: Wipeable) -> None:
        """Stop tracking an object."""
        with self._guard_lock:
            self._wipeables.discard(wipeable)

    @property
    def live_count(self) -> int:
        """Number of tracked buffers that still hold data."""
        with self._guard_lock:
            return sum(1 for b in self._buffers if not b.wiped)

    def purge(self) -> int:
        """
        Wipe every tracked store and buffer.

        Returns:
            Number of buffers that were wiped
        """
        with self._guard_lock:
            for wipeable in list(self._wipeables):
                wipeable.wipe()
            self._wipeables.clear()

            count = 0
            for buffer in list(self._buffers):
                if not buffer.wiped:
                    buffer.wipe()
                    count += 1
            self._buffers.clear()

        if count:
            logger.debug(f"Purged {count} secret buffer(s)")
        return count

    def install(self, signals: tuple[int, ...] = (signal.SIGINT, signal.SIGTERM)) -> None:
        """Register exit and signal hooks that purge all secrets."""
        with self._guard_lock:
            if self._installed:
                return
            atexit.register(self.purge)
            for signum in signals:
                try:
                    self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)
                except ValueError:
                    # signal.signal only works from the main thread
                    logger.debug(f"Could not install handler for signal {signum}")
            self._installed = True

    def uninstall(self) -> None:
        """Remove hooks installed by install()."""
        with self._guard_lock:
            if not self._installed:
                return
            atexit.unregister(self.purge)
            for signum, handler in self._previous_handlers.items():
                try:
                    signal.signal(signum, handler)
                except (ValueError, TypeError):
                    pass
            self._previous_handlers.clear()
            self._installed = False

    def _handle_signal(self, signum, frame) -> None:
        """Purge on interrupt, then exit with the conventional status."""
        self.purge()
        sys.exit(128 + signum)


def get_key_guard() -> KeyGuard:
    """Get the global key guard instance."""
    return KeyGuard.get_instance()


def purge_secrets() -> int:
    """Wipe all tracked secret material."""
    return get_key_guard().purge()
