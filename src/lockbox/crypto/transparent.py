# Vault - Transparent Crypto Backend
#
# No cryptography at all. Used for tests and demos of the vault layout.
#
# Framing:
#     -> <recipient>\n      (zero or more)
#     ---\n
#     <body bytes, unchanged>

import logging
from typing import BinaryIO, List, Sequence

from ..errors import CryptoConstructionError, VaultIOError
from .base import CryptoBackend, DecryptingSource, EncryptingSink, Recipient

logger = logging.getLogger(__name__)

RECIPIENT_PREFIX = b"-> "
SEPARATOR = b"---"


class TransparentRecipient(Recipient):
    """Any single line of text."""

    def __init__(self, text: str):
        if "\n" in text or "\r" in text:
            raise CryptoConstructionError(
                f"Recipient cannot contain a line break: {text!r}"
            )
        self._text = text

    @classmethod
    def from_text(cls, text: str) -> "TransparentRecipient":
        return cls(text)

    def __str__(self) -> str:
        return self._text

    def __repr__(self) -> str:
        return f"TransparentRecipient({self._text!r})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, TransparentRecipient):
            return NotImplemented
        return self._text == other._text

    def __hash__(self) -> int:
        return hash(self._text)


class TransparentSink(EncryptingSink):
    """Passes body bytes through unchanged."""

    def _write(self, data: bytes) -> None:
        self._output.write(data)


class TransparentSource(DecryptingSource):
    """
    Body bytes after the recipient header.

    Attributes:
        recipients: Recipient texts found in the header
        separator: The line that terminated the header, without line ending
    """

    def __init__(self, source: BinaryIO, recipients: List[str], separator: bytes):
        super().__init__(source)
        self.recipients = recipients
        self.separator = separator

    def _read(self, size: int) -> bytes:
        if size is None or size < 0:
            return self._source.read()
        return self._source.read(size)


class Transparent(CryptoBackend):
    """
    Plaintext pass-through backend.

    The header scan stops at the first line that does not start with "-> "
    and consumes that line as the separator. If that line is not exactly
    "---" it was real content and is lost. By default this is logged and
    tolerated; with ``strict=True`` it raises ``CryptoConstructionError``.
    Reaching end of file before any separator line always raises.
    """

    name = "transparent"
    file_extension = "txt"

    def __init__(self, strict: bool = False):
        self.strict = strict

    def parse_recipient(self, text: str) -> TransparentRecipient:
        return TransparentRecipient.from_text(text)

    def encrypt(self, output: BinaryIO, recipients: Sequence[Recipient]) -> TransparentSink:
        header = b"".join(
            RECIPIENT_PREFIX + str(r).encode("utf-8") + b"\n" for r in recipients
        )
        try:
            output.write(header + SEPARATOR + b"\n")
        except OSError as e:
            raise VaultIOError(f"Failed to write header: {e}") from e
        return TransparentSink(output)

    def decrypt(self, source: BinaryIO) -> TransparentSource:
        recipients: List[str] = []
        try:
            line = source.readline()
            while line.startswith(RECIPIENT_PREFIX):
                text = line[len(RECIPIENT_PREFIX):].rstrip(b"\r\n")
                recipients.append(text.decode("utf-8", errors="replace"))
                line = source.readline()
        except OSError as e:
            raise VaultIOError(f"Failed to read header: {e}") from e

        if not line:
            # Empty or cut off inside the header: never a complete entry
            raise CryptoConstructionError("Header is truncated: no separator before end of file")

        separator = line.rstrip(b"\r\n")
        if separator != SEPARATOR:
            if self.strict:
                raise CryptoConstructionError(
                    f"Expected header separator {SEPARATOR!r}, found {separator!r}"
                )
            logger.warning(
                "Transparent header ended without separator; consumed line %r",
                separator,
            )

        return TransparentSource(source, recipients, separator)
