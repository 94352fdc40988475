"""ghostpass - Privacy-first secrets store with plainsight export."""

__version__ = "0.1.0"

from .store import SecretStore, StoreManager

__all__ = [
    "__version__",
    "SecretStore",
    "StoreManager",
]
