"""Store manager for secret store lifecycle and field operations.

A SecretStore moves through these states:

    UNINITIALIZED -> OPEN -> MODIFIED -> (commit) -> OPEN -> ... -> DESTROYED

StoreManager creates stores (init/open/import) and makes sure only one
instance per store name is open at a time, both inside this process (a
registry) and across processes (a lock file next to the store).
"""

import threading
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol, Union

from . import persistence, plainsight
from .config import StoreConfig, get_store_config
from .crypto import TAG_SIZE, KdfParams, decrypt, derive_key, encrypt, generate_nonce, generate_salt
from .exceptions import (
    AlreadyOpenError,
    InvalidNameError,
    InvalidStateError,
    NameRequiredError,
    StoreDestroyedError,
    StoreExistsError,
    StoreNotFoundError,
    WeakInputError,
)
from .fields import FieldSet
from .persistence import StoreHeader, StoreLock
from .secure import SecretBuffer, get_key_guard
from ..config.settings import get_settings
from ..utils.logging import get_logger

logger = get_logger(__name__)

MasterKey = Union[str, bytes, bytearray, SecretBuffer]


class StoreState(str, Enum):
    """Lifecycle state of a secret store."""

    UNINITIALIZED = "uninitialized"
    OPEN = "open"
    MODIFIED = "modified"
    CLOSED = "closed"
    DESTROYED = "destroyed"


def _master_key_buffer(master_key: MasterKey) -> SecretBuffer:
    """Wrap a master key in a SecretBuffer (the caller's buffer is reused)."""
    if isinstance(master_key, SecretBuffer):
        return master_key
    return SecretBuffer(master_key)


def _derive(master_key: MasterKey, salt: bytes, kdf: KdfParams) -> SecretBuffer:
    """Derive the store key and wipe the master key on every exit path."""
    with _master_key_buffer(master_key) as key:
        if not key:
            raise WeakInputError()
        return derive_key(key, salt, kdf)


class SecretStore:
    """
    A named, encrypted collection of fields.

    Instances are created by StoreManager; do not construct directly.

    Usage:
        with manager.open("work", master_key) as store:
            store.add_field("github", "alice", "pw1")
            store.commit()
    """

    def __init__(
        self,
        manager: "StoreManager",
        name: str,
        salt: bytes,
        kdf: KdfParams,
        key: SecretBuffer,
        fields: Optional[FieldSet] = None,
        nonce: Optional[bytes] = None,
        lock: Optional[StoreLock] = None,
    ):
        self._manager = manager
        self._name = name
        self._salt = salt
        self._kdf = kdf
        self._key = key
        self._fields = fields if fields is not None else FieldSet()
        self._nonce = nonce or generate_nonce()
        self._lock = lock
        self._state = StoreState.UNINITIALIZED
        get_key_guard().register(self)

    def __repr__(self) -> str:
        return f"SecretStore(name={self._name!r}, state={self._state.value})"

    def __enter__(self) -> "SecretStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._state != StoreState.DESTROYED:
            self.close()
        return False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        """Store name."""
        return self._name

    @property
    def state(self) -> StoreState:
        """Current lifecycle state."""
        return self._state

    @property
    def is_dirty(self) -> bool:
        """True if there are uncommitted mutations."""
        return self._state == StoreState.MODIFIED

    @property
    def path(self) -> Path:
        """Path of the persisted store file."""
        return self._manager.store_path(self._name)

    @property
    def nonce(self) -> bytes:
        """Nonce of the most recent encryption."""
        return self._nonce

    # ------------------------------------------------------------------
    # State checks
    # ------------------------------------------------------------------

    def _require_usable(self) -> None:
        if self._state == StoreState.DESTROYED:
            raise StoreDestroyedError()
        if self._state == StoreState.CLOSED:
            raise InvalidStateError(f"Secret store '{self._name}' is closed.")

    def _require_active(self) -> None:
        self._require_usable()
        if self._state not in (StoreState.OPEN, StoreState.MODIFIED):
            raise InvalidStateError(f"Secret store '{self._name}' is not open.")

    def _mark_open(self) -> None:
        self._state = StoreState.OPEN

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def field_exists(self, service: str) -> bool:
        """Check whether a field exists for a service."""
        self._require_usable()
        return self._fields.exists(service)

    def get_field(self, service: str) -> tuple[str, str, str]:
        """
        Get (service, username, password) for a service.

        Raises:
            FieldNotFoundError: If no such field exists
        """
        self._require_usable()
        return self._fields.get(service)

    def get_fields(self) -> list[str]:
        """List all service names in the store."""
        self._require_usable()
        return self._fields.list_services()

    @property
    def field_count(self) -> int:
        """Number of fields in the store."""
        self._require_usable()
        return len(self._fields)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_field(self, service: str, username: str, password: Union[str, bytes, SecretBuffer]) -> None:
        """
        Add a field, overwriting any existing field for the service.

        A SecretBuffer password is copied and then wiped.
        """
        self._require_active()
        try:
            self._fields.add(service, username, password)
        finally:
            if isinstance(password, SecretBuffer):
                password.wipe()
        self._state = StoreState.MODIFIED
        logger.debug(f"Added field to '{self._name}' ({len(self._fields)} fields)")

    def remove_field(self, service: str) -> None:
        """
        Remove the field for a service.

        Raises:
            FieldNotFoundError: If no such field exists
        """
        self._require_active()
        self._fields.remove(service)
        self._state = StoreState.MODIFIED
        logger.debug(f"Removed field from '{self._name}' ({len(self._fields)} fields)")

    # ------------------------------------------------------------------
    # Encryption
    # ------------------------------------------------------------------

    def _seal(self, associated_data_for) -> tuple[StoreHeader, bytes]:
        """Encrypt the field set under a fresh nonce."""
        nonce = generate_nonce()
        header = StoreHeader(salt=self._salt, nonce=nonce, kdf=self._kdf)
        with SecretBuffer.take(self._fields.to_bytes()) as plaintext:
            ciphertext, tag = encrypt(self._key, nonce, plaintext.value, associated_data_for(header))
        return header, ciphertext + tag

    def commit(self) -> None:
        """
        Encrypt and atomically persist the store.

        Always re-encrypts under a new nonce, even with no changes.

        Raises:
            StorageError: If the file cannot be written
        """
        self._require_active()
        header, sealed = self._seal(lambda h: h.pack())
        persistence.save(self.path, header, sealed)
        self._nonce = header.nonce
        self._state = StoreState.OPEN
        logger.info(f"Committed secret store '{self._name}' ({len(self._fields)} fields)")

    def export(self, corpus: str) -> str:
        """
        Hide the encrypted store inside carrier text.

        Args:
            corpus: Carrier text

        Returns:
            Carrier text with the store embedded

        Raises:
            CapacityExceededError: If the corpus is too small
            CarrierError: If the corpus already carries plainsight marks
        """
        self._require_active()
        header, sealed = self._seal(lambda h: persistence.envelope_prefix(self._name, h))
        payload = persistence.pack_envelope(self._name, header, sealed)
        encoded = plainsight.encode(corpus, payload)
        logger.info(f"Exported secret store '{self._name}' ({len(payload)} byte payload)")
        return encoded

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def wipe(self) -> None:
        """Zero all fields and key material held in memory."""
        self._fields.wipe()
        self._key.wipe()
        if self._state != StoreState.DESTROYED:
            self._state = StoreState.CLOSED

    def close(self) -> None:
        """Wipe memory and release the store. Uncommitted changes are lost."""
        if self._state == StoreState.DESTROYED:
            raise StoreDestroyedError()
        if self._state == StoreState.MODIFIED:
            logger.warning(f"Closing secret store '{self._name}' with uncommitted changes")
        self.wipe()
        self._manager._release(self)
        logger.debug(f"Closed secret store '{self._name}'")

    def destroy(self) -> None:
        """
        Delete the persisted store and wipe everything in memory.

        The store cannot be used afterwards.
        """
        self._require_usable()
        path = self.path
        if path.exists():
            if self._manager.config.secure_delete:
                persistence.secure_delete(path)
            else:
                path.unlink()
        self.wipe()
        self._state = StoreState.DESTROYED
        self._manager._release(self, remove_lock=True)
        logger.info(f"Destroyed secret store '{self._name}'")


class StoreEngine(Protocol):
    """Contract the presentation layer depends on."""

    def init(self, name: str, master_key: MasterKey) -> SecretStore: ...

    def open(self, name: str, master_key: MasterKey) -> SecretStore: ...

    def import_store(
        self,
        master_key: MasterKey,
        encoded_text: str,
        name: Optional[str] = None,
        overwrite: bool = False,
    ) -> SecretStore: ...

    def list_stores(self) -> list[str]: ...

    def store_exists(self, name: str) -> bool: ...

    def close(self, store: SecretStore) -> None: ...


class StoreManager:
    """
    Creates secret stores and tracks which ones are open.

    Usage:
        manager = StoreManager()

        with manager.init("work", master_key) as store:
            store.commit()

        with manager.open("work", master_key) as store:
            store.add_field("github", "alice", "pw1")
            store.commit()
    """

    def __init__(self, workspace: Optional[Path] = None, config: Optional[StoreConfig] = None):
        """
        Initialize store manager.

        Args:
            workspace: Directory holding store files (default: configured workspace)
            config: Store configuration (uses global if not provided)
        """
        self.workspace = Path(workspace or get_settings().workspace_dir)
        self.config = config or get_store_config()
        self._open: dict[str, SecretStore] = {}
        self._registry_lock = threading.RLock()

    # ------------------------------------------------------------------
    # Paths and discovery
    # ------------------------------------------------------------------

    @staticmethod
    def _check_name(name: Optional[str]) -> None:
        if not name:
            raise NameRequiredError()
        if name != name.strip() or name.startswith(".") or any(c in name for c in "/\\\x00"):
            raise InvalidNameError(name)

    def store_path(self, name: str) -> Path:
        """Path to a store's file in the workspace."""
        return self.workspace / f"{name}{self.config.store_extension}"

    def store_exists(self, name: str) -> bool:
        """Check whether a store file exists for a name."""
        self._check_name(name)
        return self.store_path(name).exists()

    def list_stores(self) -> list[str]:
        """List names of all stores in the workspace."""
        if not self.workspace.is_dir():
            return []
        ext = self.config.store_extension
        return sorted(
            p.name[: -len(ext)]
            for p in self.workspace.iterdir()
            if p.is_file() and p.name.endswith(ext) and not p.name.startswith(".")
        )

    def is_open(self, name: str) -> bool:
        """Check whether this manager holds a store open."""
        with self._registry_lock:
            return name in self._open

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def _claim(self, name: str) -> Optional[StoreLock]:
        """Reserve a name in the registry and take its cross-process lock."""
        if name in self._open:
            raise AlreadyOpenError(name)
        if not self.config.lock_files:
            return None
        lock = StoreLock(self.store_path(name), self.config.lock_suffix)
        lock.acquire()
        return lock

    def _register(self, store: SecretStore) -> SecretStore:
        store._mark_open()
        self._open[store.name] = store
        return store

    @staticmethod
    def _unlock(lock: StoreLock, remove: bool = False) -> None:
        # no lock file outlives a store that was never committed
        lock.release(remove=remove or not lock.path.exists())

    def _release(self, store: SecretStore, remove_lock: bool = False) -> None:
        with self._registry_lock:
            if self._open.get(store.name) is store:
                del self._open[store.name]
        get_key_guard().unregister(store)
        if store._lock is not None:
            self._unlock(store._lock, remove=remove_lock)
            store._lock = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self, name: str, master_key: MasterKey) -> SecretStore:
        """
        Create a new, empty store in memory.

        Nothing is written until commit().

        Raises:
            NameRequiredError: If name is empty
            StoreExistsError: If a store with this name already exists
            AlreadyOpenError: If the name is already open
            WeakInputError: If the master key is empty
        """
        self._check_name(name)
        if self.store_path(name).exists():
            raise StoreExistsError(name)

        kdf = KdfParams(n=self.config.scrypt_n, r=self.config.scrypt_r, p=self.config.scrypt_p)
        salt = generate_salt()

        with self._registry_lock:
            lock = self._claim(name)
            try:
                key = _derive(master_key, salt, kdf)
            except BaseException:
                if lock is not None:
                    self._unlock(lock)
                raise
            store = SecretStore(self, name, salt, kdf, key, lock=lock)
            self._register(store)

        logger.info(f"Initialized secret store '{name}'")
        return store

    def open(self, name: str, master_key: MasterKey) -> SecretStore:
        """
        Open and decrypt an existing store.

        Raises:
            NameRequiredError: If name is empty
            StoreNotFoundError: If no store file exists
            AlreadyOpenError: If the store is open here or in another process
            CorruptHeaderError / UnsupportedVersionError: Bad store file
            AuthenticationFailure: Wrong master key or corrupted data
        """
        self._check_name(name)
        path = self.store_path(name)
        if not path.exists():
            raise StoreNotFoundError(name)

        with self._registry_lock:
            lock = self._claim(name)
            try:
                header, sealed = persistence.load(path)
                store = self._decrypt_store(
                    name, master_key, header, sealed, header.pack(), lock
                )
            except BaseException:
                if lock is not None:
                    self._unlock(lock)
                raise
            self._register(store)

        logger.info(f"Opened secret store '{name}' ({store.field_count} fields)")
        return store

    def import_store(
        self,
        master_key: MasterKey,
        encoded_text: str,
        name: Optional[str] = None,
        overwrite: bool = False,
    ) -> SecretStore:
        """
        Rebuild a store from plainsight-encoded text.

        The store is open but uncommitted; call commit() to persist it.

        Args:
            master_key: Master key the store was exported under
            encoded_text: Text produced by SecretStore.export()
            name: Local name (default: the exported store's name)
            overwrite: Allow replacing an existing local store on commit

        Raises:
            PlainsightDecodeError: If the text carries no valid payload
            AuthenticationFailure: Wrong master key or corrupted data
            StoreExistsError: If the name exists locally and overwrite is False
        """
        payload = plainsight.decode(encoded_text)
        exported_name, header, sealed = persistence.unpack_envelope(payload)
        aad = persistence.envelope_prefix(exported_name, header)

        local_name = name or exported_name
        self._check_name(local_name)
        if not overwrite and self.store_path(local_name).exists():
            raise StoreExistsError(local_name)

        with self._registry_lock:
            lock = self._claim(local_name)
            try:
                store = self._decrypt_store(local_name, master_key, header, sealed, aad, lock)
            except BaseException:
                if lock is not None:
                    self._unlock(lock)
                raise
            self._register(store)

        logger.info(f"Imported secret store '{local_name}' ({store.field_count} fields)")
        return store

    def _decrypt_store(
        self,
        name: str,
        master_key: MasterKey,
        header: StoreHeader,
        sealed: bytes,
        associated_data: bytes,
        lock: Optional[StoreLock],
    ) -> SecretStore:
        key = _derive(master_key, header.salt, header.kdf)
        try:
            plaintext = decrypt(
                key,
                header.nonce,
                sealed[:-TAG_SIZE],
                sealed[-TAG_SIZE:],
                associated_data,
            )
            with plaintext:
                fields = FieldSet.from_bytes(plaintext.value)
        except BaseException:
            key.wipe()
            raise
        return SecretStore(self, name, header.salt, header.kdf, key, fields, header.nonce, lock)

    def close(self, store: SecretStore) -> None:
        """Close a store opened by this manager."""
        store.close()

    def close_all(self) -> int:
        """
        Close every open store.

        Returns:
            Number of stores closed
        """
        with self._registry_lock:
            stores = list(self._open.values())
        for store in stores:
            store.close()
        return len(stores)


# Module-level convenience functions


def get_store_manager(workspace: Optional[Path] = None) -> StoreManager:
    """Get a store manager for a workspace."""
    return StoreManager(workspace)
