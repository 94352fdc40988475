"""Secret store engine for ghostpass.

Keeps named stores of (service, username, password) fields encrypted under
a master key, one file per store in the workspace, and can hide a store
inside ordinary text ("plainsight").

Usage:
    from ghostpass.store import StoreManager

    manager = StoreManager()
    with manager.init("work", master_key) as store:
        store.add_field("github", "alice", password)
        store.commit()

    with manager.open("work", master_key) as store:
        text = store.export(corpus)

    with manager.import_store(master_key, text, name="work-copy") as store:
        store.commit()
"""

# Exceptions
from .exceptions import (
    AlreadyOpenError,
    AuthenticationFailure,
    CapacityExceededError,
    CarrierError,
    CorruptHeaderError,
    CorruptStoreError,
    FieldNotFoundError,
    InvalidNameError,
    InvalidStateError,
    NameRequiredError,
    PlainsightDecodeError,
    PlainsightError,
    StorageError,
    StoreDestroyedError,
    StoreError,
    StoreExistsError,
    StoreNotFoundError,
    UnsupportedVersionError,
    WeakInputError,
)

# Configuration
from .config import (
    StoreConfig,
    get_store_config,
    set_store_config,
)

# Secret memory
from .secure import (
    KeyGuard,
    SecretBuffer,
    get_key_guard,
    purge_secrets,
)

# Store operations
from .store_manager import (
    SecretStore,
    StoreEngine,
    StoreManager,
    StoreState,
    get_store_manager,
)

__all__ = [
    # Exceptions
    "StoreError",
    "NameRequiredError",
    "InvalidNameError",
    "StoreNotFoundError",
    "StoreExistsError",
    "AlreadyOpenError",
    "StoreDestroyedError",
    "InvalidStateError",
    "AuthenticationFailure",
    "WeakInputError",
    "FieldNotFoundError",
    "CorruptHeaderError",
    "UnsupportedVersionError",
    "CorruptStoreError",
    "StorageError",
    "PlainsightError",
    "CapacityExceededError",
    "CarrierError",
    "PlainsightDecodeError",
    # Configuration
    "StoreConfig",
    "get_store_config",
    "set_store_config",
    # Secret memory
    "KeyGuard",
    "SecretBuffer",
    "get_key_guard",
    "purge_secrets",
    # Store manager
    "SecretStore",
    "StoreEngine",
    "StoreManager",
    "StoreState",
    "get_store_manager",
]
