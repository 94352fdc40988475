"""Store engine configuration for ghostpass."""

import os
from dataclasses import dataclass


@dataclass
class StoreConfig:
    """Configuration for store encryption and persistence."""

    # Key derivation (scrypt)
    scrypt_n: int = 2**15  # ~32 MB RAM with r=8
    scrypt_r: int = 8
    scrypt_p: int = 1

    # File naming
    store_extension: str = ".gp"
    lock_suffix: str = ".lock"

    # Persistence behaviour
    lock_files: bool = True  # cross-process exclusive lock per store
    secure_delete: bool = True  # zero-overwrite before unlinking on destroy

    @classmethod
    def from_env(cls) -> "StoreConfig":
        """
        Load configuration from environment variables.

        Environment variables:
            GHOSTPASS_SCRYPT_N: scrypt CPU/memory cost, power of two (default: 32768)
            GHOSTPASS_SCRYPT_R: scrypt block size (default: 8)
            GHOSTPASS_SCRYPT_P: scrypt parallelization (default: 1)
            GHOSTPASS_NO_LOCK: Disable cross-process store locks (default: false)
        """
        config = cls()

        if n := os.getenv("GHOSTPASS_SCRYPT_N"):
            config.scrypt_n = int(n)

        if r := os.getenv("GHOSTPASS_SCRYPT_R"):
            config.scrypt_r = int(r)

        if p := os.getenv("GHOSTPASS_SCRYPT_P"):
            config.scrypt_p = int(p)

        if os.getenv("GHOSTPASS_NO_LOCK", "").lower() == "true":
            config.lock_files = False

        return config


# Global configuration instance
_config: StoreConfig | None = None


def get_store_config() -> StoreConfig:
    """Get the global store configuration."""
    global _config
    if _config is None:
        _config = StoreConfig.from_env()
    return _config


def set_store_config(config: StoreConfig) -> None:
    """Set the global store configuration."""
    global _config
    _config = config
