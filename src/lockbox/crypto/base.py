# Vault - Crypto Backend Contract
#
# Defines the three roles every encryption backend provides:
#   - Recipient:        public credential, built from text
#   - EncryptingSink:   wraps a binary output stream, emits ciphertext only
#   - DecryptingSource: wraps a binary input stream, yields plaintext
#
# A backend is chosen once at start-up and handed to the Vault. It never
# touches storage directly; it only wraps the streams storage hands out.

import warnings
from abc import ABC, abstractmethod
from typing import BinaryIO, List, Sequence

from ..errors import VaultIOError


class Recipient(ABC):
    """Public credential an entry is encrypted to. Immutable once built."""

    @classmethod
    @abstractmethod
    def from_text(cls, text: str) -> "Recipient":
        """
        Parse the textual form of a recipient.

        Raises:
            CryptoConstructionError: If the text is not a valid recipient.
        """

    @abstractmethod
    def __str__(self) -> str:
        """Textual form, accepted back by ``from_text``."""

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


class EncryptingSink(ABC):
    """
    Write-only stream that encrypts everything written through it.

    Implementations MUST only pass ciphertext (or ciphertext framing) to the
    wrapped stream. ``finalize()`` writes any trailing authentication data
    and must be called for the output to be complete; using the sink as a
    context manager finalizes on a clean exit and only closes on an error.
    """

    def __init__(self, output: BinaryIO):
        self._output = output
        self._finalized = False
        self._closed = False

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> int:
        if self._finalized or self._closed:
            raise ValueError("write to a finalized or closed encrypting sink")
        try:
            self._write(bytes(data))
        except OSError as e:
            raise VaultIOError(f"Failed to write ciphertext: {e}") from e
        return len(data)

    def flush(self) -> None:
        try:
            self._output.flush()
        except OSError as e:
            raise VaultIOError(f"Failed to flush ciphertext: {e}") from e

    def finalize(self) -> None:
        """Emit the trailing footer and flush. Safe to call more than once."""
        if self._finalized:
            return
        if self._closed:
            raise ValueError("cannot finalize a closed encrypting sink")
        try:
            self._finish()
        except OSError as e:
            raise VaultIOError(f"Failed to finalize ciphertext: {e}") from e
        self._finalized = True
        self.flush()

    def close(self) -> None:
        """Release the wrapped stream. Does not finalize."""
        if self._closed:
            return
        self._closed = True
        try:
            self._output.close()
        except OSError as e:
            raise VaultIOError(f"Failed to close ciphertext stream: {e}") from e

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            if exc_type is None:
                self.finalize()
        finally:
            self.close()
        return False

    def __del__(self):
        if not getattr(self, "_finalized", True) and not getattr(self, "_closed", True):
            warnings.warn(
                f"{type(self).__name__} was garbage collected without finalize(); "
                "the ciphertext is incomplete",
                ResourceWarning,
                stacklevel=2,
            )

    @abstractmethod
    def _write(self, data: bytes) -> None:
        """Encrypt ``data`` and write whatever ciphertext is ready."""

    def _finish(self) -> None:
        """Write the trailing footer, if the scheme has one."""


class DecryptingSource(ABC):
    """Read-only stream exposing the plaintext of a wrapped ciphertext stream."""

    def __init__(self, source: BinaryIO):
        self._source = source
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int = -1) -> bytes:
        if self._closed:
            raise ValueError("read from a closed decrypting source")
        try:
            return self._read(size)
        except OSError as e:
            raise VaultIOError(f"Failed to read ciphertext: {e}") from e

    def readable(self) -> bool:
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._source.close()
        except OSError as e:
            raise VaultIOError(f"Failed to close ciphertext stream: {e}") from e

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    @abstractmethod
    def _read(self, size: int) -> bytes:
        """Return up to ``size`` plaintext bytes (all remaining if negative)."""


class CryptoBackend(ABC):
    """
    Encryption scheme used for every entry of a vault.

    Attributes:
        name: Identifier used in configuration (``LOCKBOX_BACKEND``)
        file_extension: Extension storage uses for entries of this scheme
    """

    name: str = ""
    file_extension: str = ""

    @abstractmethod
    def parse_recipient(self, text: str) -> Recipient:
        """Build this backend's recipient type from text."""

    def parse_recipients(self, texts: Sequence[str]) -> List[Recipient]:
        return [self.parse_recipient(text) for text in texts]

    def check_recipients(self, recipients: Sequence[Recipient]) -> None:
        """
        Validate a recipient list without touching any stream.

        Raises:
            CryptoConstructionError: If ``encrypt`` would reject ``recipients``.
        """

    @abstractmethod
    def encrypt(self, output: BinaryIO, recipients: Sequence[Recipient]) -> EncryptingSink:
        """
        Wrap ``output`` so that writes are encrypted to ``recipients``.

        Any header is written before this returns. Construction problems
        raise before a single byte reaches ``output``.

        Raises:
            CryptoConstructionError: Bad or missing recipients.
            VaultIOError: Writing the header failed.
        """

    @abstractmethod
    def decrypt(self, source: BinaryIO) -> DecryptingSource:
        """
        Wrap ``source`` so that reads return plaintext.

        The header is consumed before this returns.

        Raises:
            CryptoConstructionError: Header problems or no usable identity.
            VaultIOError: Reading the header failed.
        """
