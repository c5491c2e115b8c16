"""
Lockbox Exception Classes

Every fallible core operation raises one of these. The orchestration layer
only recovers from them in non-strict listing, where the failure is attached
to the entry it came from.
"""

from typing import Optional


class VaultError(Exception):
    """Base exception for all vault operations"""


class VaultIOError(VaultError):
    """Raised when reading from or writing to the underlying transport fails"""


class FormatViolation(VaultError):
    """Raised when decrypted entry data is not a valid record"""

    def __init__(
        self,
        message: str,
        line: Optional[str] = None,
        line_number: Optional[int] = None,
    ):
        self.line = line
        self.line_number = line_number
        super().__init__(message)


# ---------------------------------------------------------------------------
# Crypto
# ---------------------------------------------------------------------------

class CryptoError(VaultError):
    """Base exception for encryption backends"""


class CryptoConstructionError(CryptoError):
    """Raised when an encrypting sink or decrypting source cannot be built"""


class HeaderMismatch(CryptoConstructionError):
    """Raised when a ciphertext header is malformed or fails authentication"""


class NoMatchingIdentity(CryptoConstructionError):
    """Raised when none of the configured identities can open a ciphertext"""


class IntegrityError(CryptoError):
    """Raised when a payload chunk fails authentication while streaming"""


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

class StorageError(VaultError):
    """Base exception for storage backends"""


class AlreadyExists(StorageError):
    """Raised when a vault or an entry would be overwritten"""


class PathKindError(StorageError):
    """Raised when a path points at the wrong kind of filesystem object"""


class NotADirectory(PathKindError):
    """Raised when a directory was expected but a file exists at the path"""


class IsADirectory(PathKindError):
    """Raised when a file was expected but a directory exists at the path"""
