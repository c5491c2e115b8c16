# Lockbox - Main Package
#
# Local credential vault: every entry is one encrypted file holding an
# ordered key/value record. Encryption scheme and storage medium are
# independent, pluggable backends.

__version__ = "0.1.0"
__description__ = "Local credential vault with pluggable crypto and storage"

from .config import Settings, load_settings
from .errors import (
    AlreadyExists,
    CryptoConstructionError,
    CryptoError,
    FormatViolation,
    HeaderMismatch,
    IntegrityError,
    IsADirectory,
    NoMatchingIdentity,
    NotADirectory,
    StorageError,
    VaultError,
    VaultIOError,
)
from .record import DisplayOptions, Field, Insensitive, Key, Record, Sensitive
from .vault import RenderedEntry, Vault, open_vault

__all__ = [
    "__version__",
    "AlreadyExists",
    "CryptoConstructionError",
    "CryptoError",
    "DisplayOptions",
    "Field",
    "FormatViolation",
    "HeaderMismatch",
    "Insensitive",
    "IntegrityError",
    "IsADirectory",
    "Key",
    "NoMatchingIdentity",
    "NotADirectory",
    "Record",
    "RenderedEntry",
    "Sensitive",
    "Settings",
    "StorageError",
    "Vault",
    "VaultError",
    "VaultIOError",
    "load_settings",
    "open_vault",
]
