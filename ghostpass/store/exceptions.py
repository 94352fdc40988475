"""Store engine exceptions for ghostpass."""


class StoreError(Exception):
    """Base exception for secret store operations."""

    pass


class NameRequiredError(StoreError):
    """Raised when a store operation is attempted without a store name."""

    def __init__(self, message: str = "Name of secret store not specified."):
        super().__init__(message)


class InvalidNameError(StoreError, ValueError):
    """Raised when a store name cannot be used as a file name."""

    def __init__(self, name: str = ""):
        message = f"Invalid secret store name: {name!r}" if name else "Invalid secret store name."
        super().__init__(message)


class StoreNotFoundError(StoreError):
    """Raised when the persisted store file does not exist."""

    def __init__(self, name: str = ""):
        message = f"Secret store not found: {name}" if name else "Secret store not found."
        super().__init__(message)


class StoreExistsError(StoreError):
    """Raised when initializing a store whose name is already taken."""

    def __init__(self, name: str = ""):
        message = f"Secret store already exists: {name}" if name else "Secret store already exists."
        super().__init__(message)


class AlreadyOpenError(StoreError):
    """Raised when a store is already open in this or another process."""

    def __init__(self, name: str = ""):
        message = f"Secret store is already open: {name}" if name else "Secret store is already open."
        super().__init__(message)


class StoreDestroyedError(StoreError):
    """Raised on any operation against a destroyed store."""

    def __init__(self, message: str = "Secret store has been destroyed."):
        super().__init__(message)


class InvalidStateError(StoreError):
    """Raised when an operation is not valid in the store's current state."""

    def __init__(self, message: str = "Operation not valid in current store state."):
        super().__init__(message)


class AuthenticationFailure(StoreError):
    """Raised when decryption fails.

    Covers both a wrong master key and corrupted ciphertext. The two causes
    are reported the same way.
    """

    def __init__(self, message: str = "Unable to decrypt secret store: wrong master key or corrupted data."):
        super().__init__(message)


class WeakInputError(StoreError, ValueError):
    """Raised when a master key is empty."""

    def __init__(self, message: str = "Master key must not be empty."):
        super().__init__(message)


class FieldNotFoundError(StoreError, KeyError):
    """Raised when a service has no field in the store."""

    def __init__(self, service: str = ""):
        message = f"Field not found: {service}" if service else "Field not found."
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0]) if self.args else ""


class CorruptHeaderError(StoreError):
    """Raised when a store file header has bad magic or is truncated."""

    def __init__(self, message: str = "Secret store header is corrupted."):
        super().__init__(message)


class UnsupportedVersionError(StoreError):
    """Raised when a store file was written with an unknown format version."""

    def __init__(self, version: int | None = None):
        message = (
            f"Unsupported secret store format version: {version}"
            if version is not None
            else "Unsupported secret store format version."
        )
        super().__init__(message)


class CorruptStoreError(StoreError):
    """Raised when decrypted store contents cannot be parsed."""

    def __init__(self, message: str = "Secret store contents are corrupted."):
        super().__init__(message)


class StorageError(StoreError, OSError):
    """Raised on disk-level failures while reading or writing a store."""

    def __init__(self, message: str = "Secret store I/O failed."):
        super().__init__(message)


class PlainsightError(StoreError):
    """Base exception for plainsight encoding failures."""

    pass


class CapacityExceededError(PlainsightError):
    """Raised when a carrier text cannot hold the payload."""

    def __init__(self, needed: int = 0, available: int = 0):
        if needed or available:
            message = (
                f"Corpus too small for plainsight encoding: "
                f"need {needed} bytes of capacity, have {available}."
            )
        else:
            message = "Corpus too small for plainsight encoding."
        super().__init__(message)
        self.needed = needed
        self.available = available


class CarrierError(PlainsightError):
    """Raised when a carrier text is unusable for encoding."""

    def __init__(self, message: str = "Corpus cannot be used as a plainsight carrier."):
        super().__init__(message)


class PlainsightDecodeError(PlainsightError):
    """Raised when no valid plainsight payload can be recovered."""

    def __init__(self, message: str = "No valid plainsight payload found in text."):
        super().__init__(message)
