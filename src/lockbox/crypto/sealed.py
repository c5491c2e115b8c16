# Vault - Sealed Crypto Backend (streaming authenticated encryption)
#
# Public-key, multi-recipient, chunked AEAD in the style of age:
#   - X25519 ephemeral-static DH per recipient wraps a random 128-bit file key
#   - HKDF-SHA256 for every derived key (domain separated by ``info``)
#   - HMAC-SHA256 over the header binds the recipient list to the file key
#   - ChaCha20-Poly1305 STREAM over 64 KiB chunks for the payload
#
# File layout:
#
#     lockbox/v1\n
#     -> X25519 <ephemeral pub hex> <wrapped file key hex>\n   (per recipient)
#     --- <header mac hex>\n
#     <16-byte payload nonce>
#     <chunk 0> ... <final chunk>        each chunk = ciphertext || 16-byte tag
#
# Chunk nonce = 11-byte big-endian counter || last-chunk flag (0x00 / 0x01).
# Only the final chunk carries the flag, so truncation at a chunk boundary
# fails authentication instead of yielding a shorter plaintext.

import hashlib
import hmac
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, List, Optional, Sequence, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import x25519
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..errors import (
    CryptoConstructionError,
    HeaderMismatch,
    IntegrityError,
    NoMatchingIdentity,
    VaultIOError,
)
from .base import CryptoBackend, DecryptingSource, EncryptingSink, Recipient

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────

MAGIC = b"lockbox/v1"
STANZA_PREFIX = b"-> "
STANZA_TYPE = b"X25519"
MAC_PREFIX = b"--- "

RECIPIENT_PREFIX = "lockbox-"
IDENTITY_PREFIX = "LOCKBOX-SECRET-KEY-"

# Domain separation strings for HKDF
WRAP_INFO = b"lockbox/v1/X25519"
HEADER_INFO = b"header"
PAYLOAD_INFO = b"payload"

KEY_SIZE = 32               # X25519 keys and derived ChaCha20 keys
FILE_KEY_SIZE = 16          # random per-entry key, wrapped per recipient
PAYLOAD_NONCE_SIZE = 16
TAG_SIZE = 16
WRAPPED_KEY_SIZE = FILE_KEY_SIZE + TAG_SIZE
CHUNK_SIZE = 64 * 1024
ENCRYPTED_CHUNK_SIZE = CHUNK_SIZE + TAG_SIZE
COUNTER_SIZE = 11
MAX_HEADER_LINE = 1024

_ZERO_NONCE = b"\x00" * 12


# ── Key derivation ───────────────────────────────────────────────────


def hkdf_derive(
    input_key_material: bytes, info: bytes, salt: Optional[bytes] = None,
    length: int = KEY_SIZE,
) -> bytes:
    """Derive key material using HKDF-SHA256."""
    return HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        info=info,
    ).derive(input_key_material)


def header_mac(file_key: bytes, header: bytes) -> bytes:
    """HMAC-SHA256 over the header, keyed from the file key."""
    mac_key = hkdf_derive(file_key, HEADER_INFO)
    return hmac.new(mac_key, header, hashlib.sha256).digest()


def _raw_public(key: x25519.X25519PublicKey) -> bytes:
    return key.public_bytes(
        serialization.Encoding.Raw,
        serialization.PublicFormat.Raw,
    )


def _parse_hex_key(text: str, prefix: str, what: str) -> bytes:
    if not text.startswith(prefix):
        raise CryptoConstructionError(f"{what} must start with {prefix!r}")
    body = text[len(prefix):]
    try:
        raw = bytes.fromhex(body)
    except ValueError as e:
        raise CryptoConstructionError(f"{what} is not valid hex") from e
    if len(raw) != KEY_SIZE:
        raise CryptoConstructionError(
            f"{what} must encode {KEY_SIZE} bytes, got {len(raw)}"
        )
    return raw


# ── Key pairs ────────────────────────────────────────────────────────


class X25519Recipient(Recipient):
    """X25519 public key, text form ``lockbox-<64 hex>``."""

    def __init__(self, public_key: x25519.X25519PublicKey):
        self.public_key = public_key

    @classmethod
    def from_text(cls, text: str) -> "X25519Recipient":
        raw = _parse_hex_key(text.strip(), RECIPIENT_PREFIX, "Recipient")
        return cls(x25519.X25519PublicKey.from_public_bytes(raw))

    @property
    def public_bytes(self) -> bytes:
        return _raw_public(self.public_key)

    def wrap(self, file_key: bytes) -> Tuple[bytes, bytes]:
        """Wrap ``file_key`` for this recipient. Returns (ephemeral_pub, wrapped)."""
        ephemeral = x25519.X25519PrivateKey.generate()
        ephemeral_pub = _raw_public(ephemeral.public_key())
        shared = ephemeral.exchange(self.public_key)
        wrap_key = hkdf_derive(shared, WRAP_INFO, salt=ephemeral_pub + self.public_bytes)
        wrapped = ChaCha20Poly1305(wrap_key).encrypt(_ZERO_NONCE, file_key, None)
        return ephemeral_pub, wrapped

    def __str__(self) -> str:
        return RECIPIENT_PREFIX + self.public_bytes.hex()

    def __repr__(self) -> str:
        return f"X25519Recipient({str(self)!r})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, X25519Recipient):
            return NotImplemented
        return hmac.compare_digest(self.public_bytes, other.public_bytes)

    def __hash__(self) -> int:
        return hash(self.public_bytes)


class Identity:
    """X25519 private key, text form ``LOCKBOX-SECRET-KEY-<64 hex>``."""

    def __init__(self, private_key: x25519.X25519PrivateKey):
        self.private_key = private_key

    @classmethod
    def generate(cls) -> "Identity":
        return cls(x25519.X25519PrivateKey.generate())

    @classmethod
    def from_text(cls, text: str) -> "Identity":
        raw = _parse_hex_key(text.strip(), IDENTITY_PREFIX, "Identity")
        return cls(x25519.X25519PrivateKey.from_private_bytes(raw))

    def to_text(self) -> str:
        raw = self.private_key.private_bytes(
            serialization.Encoding.Raw,
            serialization.PrivateFormat.Raw,
            serialization.NoEncryption(),
        )
        return IDENTITY_PREFIX + raw.hex().upper()

    def recipient(self) -> X25519Recipient:
        return X25519Recipient(self.private_key.public_key())

    def unwrap(self, ephemeral_pub: bytes, wrapped: bytes) -> Optional[bytes]:
        """Recover the file key from one stanza, or None if it is not ours."""
        try:
            shared = self.private_key.exchange(
                x25519.X25519PublicKey.from_public_bytes(ephemeral_pub)
            )
        except ValueError:
            # Low-order point: all-zero shared secret
            return None
        own_pub = self.recipient().public_bytes
        wrap_key = hkdf_derive(shared, WRAP_INFO, salt=ephemeral_pub + own_pub)
        try:
            return ChaCha20Poly1305(wrap_key).decrypt(_ZERO_NONCE, wrapped, None)
        except InvalidTag:
            return None

    def __repr__(self) -> str:
        return f"Identity(recipient={str(self.recipient())!r})"


def load_identities(path: Path) -> List[Identity]:
    """
    Read identities from a file, one per line.

    Blank lines and lines starting with "#" are ignored.

    Raises:
        VaultIOError: If the file cannot be read.
        CryptoConstructionError: If a line is not a valid identity.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise VaultIOError(f"Failed to read identity file {path}: {e}") from e

    identities = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        identities.append(Identity.from_text(line))
    return identities


def write_identity_file(path: Path, identity: Identity) -> None:
    """
    Create a new identity file (owner read/write only). Never overwrites.

    Raises:
        VaultIOError: If the file exists or cannot be written.
    """
    path = Path(path)
    contents = (
        f"# created: {datetime.now(timezone.utc).isoformat()}\n"
        f"# recipient: {identity.recipient()}\n"
        f"{identity.to_text()}\n"
    )
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(contents)
    except OSError as e:
        raise VaultIOError(f"Failed to write identity file {path}: {e}") from e


# ── Payload stream ───────────────────────────────────────────────────


def _chunk_nonce(counter: int, last: bool) -> bytes:
    if counter >= 1 << (8 * COUNTER_SIZE):
        raise IntegrityError("Chunk counter overflow")
    return counter.to_bytes(COUNTER_SIZE, "big") + (b"\x01" if last else b"\x00")


class SealedSink(EncryptingSink):
    """Buffers plaintext and seals it in CHUNK_SIZE pieces."""

    def __init__(self, output: BinaryIO, payload_key: bytes):
        super().__init__(output)
        self._aead = ChaCha20Poly1305(payload_key)
        self._buffer = bytearray()
        self._counter = 0

    def _seal(self, chunk: bytes, last: bool) -> None:
        nonce = _chunk_nonce(self._counter, last)
        self._counter += 1
        self._output.write(self._aead.encrypt(nonce, chunk, None))

    def _write(self, data: bytes) -> None:
        self._buffer += data
        # Strictly greater: a full buffer may still turn out to be the last chunk
        while len(self._buffer) > CHUNK_SIZE:
            self._seal(bytes(self._buffer[:CHUNK_SIZE]), last=False)
            del self._buffer[:CHUNK_SIZE]

    def _finish(self) -> None:
        self._seal(bytes(self._buffer), last=True)
        self._buffer.clear()


class SealedSource(DecryptingSource):
    """Opens chunks on demand; each chunk is authenticated before release."""

    def __init__(self, source: BinaryIO, payload_key: bytes):
        super().__init__(source)
        self._aead = ChaCha20Poly1305(payload_key)
        self._pending = bytearray()
        self._plaintext = bytearray()
        self._counter = 0
        self._eof = False
        self._done = False

    def _fill(self) -> None:
        # One byte of lookahead tells a full final chunk from a full middle one
        while len(self._pending) <= ENCRYPTED_CHUNK_SIZE and not self._eof:
            data = self._source.read(ENCRYPTED_CHUNK_SIZE + 1 - len(self._pending))
            if not data:
                self._eof = True
            else:
                self._pending += data

    def _open_next_chunk(self) -> bool:
        if self._done:
            return False

        self._fill()
        if len(self._pending) > ENCRYPTED_CHUNK_SIZE:
            chunk = bytes(self._pending[:ENCRYPTED_CHUNK_SIZE])
            del self._pending[:ENCRYPTED_CHUNK_SIZE]
            last = False
        else:
            chunk = bytes(self._pending)
            self._pending.clear()
            last = True

        if not chunk:
            raise IntegrityError("Payload is truncated: final chunk missing")

        try:
            plaintext = self._aead.decrypt(_chunk_nonce(self._counter, last), chunk, None)
        except InvalidTag as e:
            raise IntegrityError(
                f"Payload chunk {self._counter} failed authentication "
                "(truncated or tampered)"
            ) from e

        if last and not plaintext and self._counter > 0:
            raise IntegrityError("Final chunk is empty")

        self._counter += 1
        self._done = last
        self._plaintext += plaintext
        return True

    def _read(self, size: int) -> bytes:
        if size is None or size < 0:
            while self._open_next_chunk():
                pass
            size = len(self._plaintext)
        else:
            while len(self._plaintext) < size and self._open_next_chunk():
                pass
        out = bytes(self._plaintext[:size])
        del self._plaintext[:size]
        return out


# ── Backend ──────────────────────────────────────────────────────────


def _read_exact(source: BinaryIO, size: int) -> bytes:
    data = bytearray()
    while len(data) < size:
        piece = source.read(size - len(data))
        if not piece:
            break
        data += piece
    return bytes(data)


class Sealed(CryptoBackend):
    """
    Production backend.

    Args:
        identities: Private keys tried, in order, against every recipient
                    stanza when decrypting. Not needed for encryption.
    """

    name = "sealed"
    file_extension = "lbx"

    def __init__(self, identities: Sequence[Identity] = ()):
        self.identities: List[Identity] = list(identities)

    @classmethod
    def from_identity_file(cls, path: Path) -> "Sealed":
        return cls(load_identities(path))

    def parse_recipient(self, text: str) -> X25519Recipient:
        return X25519Recipient.from_text(text)

    def default_recipients(self) -> List[X25519Recipient]:
        """Recipients paired with the configured identities."""
        return [identity.recipient() for identity in self.identities]

    def check_recipients(self, recipients: Sequence[Recipient]) -> None:
        if not recipients:
            raise CryptoConstructionError("At least one recipient is required")
        for r in recipients:
            if not isinstance(r, X25519Recipient):
                raise CryptoConstructionError(
                    f"Unsupported recipient type for sealed backend: {type(r).__name__}"
                )

    def encrypt(self, output: BinaryIO, recipients: Sequence[Recipient]) -> SealedSink:
        self.check_recipients(recipients)

        file_key = os.urandom(FILE_KEY_SIZE)
        header = bytearray(MAGIC + b"\n")
        for r in recipients:
            ephemeral_pub, wrapped = r.wrap(file_key)
            header += b"%s%s %s %s\n" % (
                STANZA_PREFIX, STANZA_TYPE,
                ephemeral_pub.hex().encode(), wrapped.hex().encode(),
            )
        header += b"---"
        mac = header_mac(file_key, bytes(header))
        header += b" " + mac.hex().encode() + b"\n"

        nonce = os.urandom(PAYLOAD_NONCE_SIZE)
        try:
            output.write(bytes(header) + nonce)
        except OSError as e:
            raise VaultIOError(f"Failed to write header: {e}") from e

        payload_key = hkdf_derive(file_key, PAYLOAD_INFO, salt=nonce)
        return SealedSink(output, payload_key)

    def _read_header(self, source: BinaryIO) -> Tuple[List[Tuple[bytes, bytes]], bytes, bytes]:
        """Returns (stanzas, header bytes covered by the MAC, mac)."""
        first = source.readline(MAX_HEADER_LINE)
        if first.rstrip(b"\n") != MAGIC:
            raise HeaderMismatch("Not a sealed lockbox entry (bad magic line)")

        covered = bytearray(first)
        stanzas: List[Tuple[bytes, bytes]] = []
        while True:
            line = source.readline(MAX_HEADER_LINE)
            if not line.endswith(b"\n"):
                raise HeaderMismatch("Header is truncated")

            if line.startswith(STANZA_PREFIX):
                covered += line
                parts = line[len(STANZA_PREFIX):].rstrip(b"\n").split(b" ")
                if parts[0] != STANZA_TYPE:
                    logger.debug("Skipping unsupported stanza type %r", parts[0])
                    continue
                if len(parts) != 3:
                    raise HeaderMismatch("Malformed X25519 stanza")
                try:
                    ephemeral_pub = bytes.fromhex(parts[1].decode("ascii"))
                    wrapped = bytes.fromhex(parts[2].decode("ascii"))
                except ValueError as e:
                    raise HeaderMismatch("Malformed X25519 stanza") from e
                if len(ephemeral_pub) != KEY_SIZE or len(wrapped) != WRAPPED_KEY_SIZE:
                    raise HeaderMismatch("Malformed X25519 stanza")
                stanzas.append((ephemeral_pub, wrapped))

            elif line.startswith(MAC_PREFIX):
                covered += b"---"
                try:
                    mac = bytes.fromhex(line[len(MAC_PREFIX):].rstrip(b"\n").decode("ascii"))
                except ValueError as e:
                    raise HeaderMismatch("Malformed header MAC") from e
                return stanzas, bytes(covered), mac

            else:
                raise HeaderMismatch(f"Unexpected header line: {line[:32]!r}")

    def decrypt(self, source: BinaryIO) -> SealedSource:
        try:
            stanzas, covered, mac = self._read_header(source)
        except OSError as e:
            raise VaultIOError(f"Failed to read header: {e}") from e

        if not self.identities:
            raise NoMatchingIdentity("No identities configured for decryption")

        file_key = None
        for ephemeral_pub, wrapped in stanzas:
            for identity in self.identities:
                file_key = identity.unwrap(ephemeral_pub, wrapped)
                if file_key is not None:
                    break
            if file_key is not None:
                break

        if file_key is None:
            raise NoMatchingIdentity(
                f"None of {len(self.identities)} identities match "
                f"{len(stanzas)} recipient stanzas"
            )

        if not hmac.compare_digest(header_mac(file_key, covered), mac):
            raise HeaderMismatch("Header MAC does not match")

        try:
            nonce = _read_exact(source, PAYLOAD_NONCE_SIZE)
        except OSError as e:
            raise VaultIOError(f"Failed to read payload nonce: {e}") from e
        if len(nonce) != PAYLOAD_NONCE_SIZE:
            raise HeaderMismatch("Payload nonce is truncated")

        payload_key = hkdf_derive(file_key, PAYLOAD_INFO, salt=nonce)
        return SealedSource(source, payload_key)
