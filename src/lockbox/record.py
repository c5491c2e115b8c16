# Vault - Record Format
#
# Plaintext layout inside every decrypted entry: one field per line,
#
#     <key>[!]=<value>\n
#
# "!" marks a sensitive value. Lines are split on the FIRST "=" so values
# (URLs with query strings, base64 blobs) may contain "=" freely.
# Sensitivity only controls redaction when rendering; every field of an
# entry sits under the same ciphertext.

from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, FrozenSet, Iterable, Iterator, List, Optional, TextIO

from .errors import FormatViolation


DELIMITER = "="
SENSITIVITY_MARKER = "!"

# Redacted values never show more than this many asterisks
MAX_REDACTED_LENGTH = 16


# ── Keys ─────────────────────────────────────────────────────────────


class KeyKind(str, Enum):
    """Well-known field names, plus OTHER for caller-defined keys."""
    NAME = "name"
    USERNAME = "username"
    EMAIL = "email"
    PASSWORD = "password"
    URL = "url"
    NOTES = "notes"
    OTHER = "other"


_WELL_KNOWN = {kind.value: kind for kind in KeyKind if kind is not KeyKind.OTHER}


@dataclass(frozen=True)
class Key:
    """
    Field key: one of the well-known names or ``Other(text)``.

    Equality and hashing are structural, so two ``Other`` keys with the same
    text are equal. ``Key.other("password")`` is NOT equal to
    ``Key.PASSWORD``; use ``Key.parse`` to get the canonical variant.
    """
    kind: KeyKind
    text: str

    def __post_init__(self):
        if self.kind is not KeyKind.OTHER and self.text != self.kind.value:
            raise ValueError(
                f"Well-known key {self.kind.name} must have text {self.kind.value!r}"
            )

    @classmethod
    def parse(cls, text: str) -> "Key":
        """Map text to its well-known key, falling back to ``Other``."""
        kind = _WELL_KNOWN.get(text)
        if kind is None:
            return cls(KeyKind.OTHER, text)
        return cls(kind, text)

    @classmethod
    def other(cls, text: str) -> "Key":
        return cls(KeyKind.OTHER, text)

    @property
    def is_well_known(self) -> bool:
        return self.kind is not KeyKind.OTHER

    def __str__(self) -> str:
        return self.text


Key.NAME = Key.parse("name")
Key.USERNAME = Key.parse("username")
Key.EMAIL = Key.parse("email")
Key.PASSWORD = Key.parse("password")
Key.URL = Key.parse("url")
Key.NOTES = Key.parse("notes")


# ── Values ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Value:
    """Base for field values. Use ``Sensitive`` or ``Insensitive``."""
    text: str

    sensitive = False

    def redacted(self) -> str:
        return "*" * min(len(self.text), MAX_REDACTED_LENGTH)


@dataclass(frozen=True)
class Sensitive(Value):
    """Secret material: rendered as asterisks unless secrets are shown."""

    sensitive = True


@dataclass(frozen=True)
class Insensitive(Value):
    """Plain metadata: always rendered verbatim."""


# ── Fields ───────────────────────────────────────────────────────────


def _check_no_newline(text: str, what: str) -> None:
    if "\n" in text or "\r" in text:
        raise ValueError(f"{what} cannot contain a line break: {text!r}")


@dataclass(frozen=True)
class Field:
    """
    One key/value pair of a record.

    Construction rejects anything that could not be serialized back into a
    single line and parsed to the same field.
    """
    key: Key
    value: Value

    def __post_init__(self):
        key_text = self.key.text
        if DELIMITER in key_text:
            raise ValueError(f"Key cannot contain {DELIMITER!r}: {key_text!r}")
        # "a!=v" always decodes as a sensitive "a"; "a!!=v" is unambiguous
        if key_text.endswith(SENSITIVITY_MARKER) and not self.value.sensitive:
            raise ValueError(
                f"Key of an insensitive value cannot end with "
                f"{SENSITIVITY_MARKER!r}: {key_text!r}"
            )
        _check_no_newline(key_text, "Key")
        _check_no_newline(self.value.text, "Value")

    @classmethod
    def new(cls, key, value) -> "Field":
        """Build a field from a key (or key text) and a Value (or plain text)."""
        if isinstance(key, str):
            key = Key.parse(key)
        if isinstance(value, str):
            value = Insensitive(value)
        return cls(key, value)

    @classmethod
    def parse(cls, line: str) -> "Field":
        """
        Parse ``key[!]=value``.

        Everything before the first "=" is the key span, everything after it
        is the literal value.

        Raises:
            FormatViolation: If the line has no "=" or is otherwise unusable.
        """
        key_span, sep, text = line.partition(DELIMITER)
        if not sep:
            raise FormatViolation(
                f"Missing {DELIMITER!r} delimiter in record line: {line!r}",
                line=line,
            )

        if key_span.endswith(SENSITIVITY_MARKER):
            key_span = key_span[: -len(SENSITIVITY_MARKER)]
            value: Value = Sensitive(text)
        else:
            value = Insensitive(text)

        try:
            return cls(Key.parse(key_span), value)
        except ValueError as e:
            raise FormatViolation(str(e), line=line) from e

    def encode(self) -> str:
        """Single serialized line, without the trailing newline."""
        marker = SENSITIVITY_MARKER if self.value.sensitive else ""
        return f"{self.key}{marker}{DELIMITER}{self.value.text}"

    def render(self, show_secrets: bool) -> str:
        if self.value.sensitive and not show_secrets:
            shown = self.value.redacted()
        else:
            shown = self.value.text
        return f"{self.key}: {shown}"


# ── Display options ──────────────────────────────────────────────────


# Keys shown by ``list`` when the caller asks for nothing else
DEFAULT_DISPLAY_KEYS = frozenset({Key.NAME, Key.USERNAME, Key.EMAIL, Key.URL})


@dataclass(frozen=True)
class DisplayOptions:
    """
    Which fields a rendering shows.

    ``show_all`` selects every field regardless of ``enabled_keys``. Neither
    setting affects redaction: a selected sensitive field is still masked
    unless secrets are shown.
    """
    show_all: bool = False
    enabled_keys: FrozenSet[Key] = field(default_factory=frozenset)

    @classmethod
    def defaults(cls) -> "DisplayOptions":
        return cls(enabled_keys=DEFAULT_DISPLAY_KEYS)

    @classmethod
    def everything(cls) -> "DisplayOptions":
        return cls(show_all=True)

    def with_keys(self, keys: Iterable) -> "DisplayOptions":
        extra = {Key.parse(k) if isinstance(k, str) else k for k in keys}
        return DisplayOptions(self.show_all, self.enabled_keys | extra)

    def selects(self, key: Key) -> bool:
        return self.show_all or key in self.enabled_keys


# ── Record ───────────────────────────────────────────────────────────


class Record:
    """
    Ordered key/value body of a vault entry.

    Order is insertion order and duplicate keys are kept as-is. A record is
    written once and rebuilt in full every time its entry is read.
    """

    def __init__(self, fields: Optional[Iterable[Field]] = None):
        self._fields: List[Field] = list(fields or [])

    def __iter__(self) -> Iterator[Field]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return self._fields == other._fields

    def __repr__(self) -> str:
        keys = ", ".join(str(f.key) for f in self._fields)
        return f"Record([{keys}])"

    @property
    def fields(self) -> List[Field]:
        return list(self._fields)

    def append(self, field_: Field) -> None:
        self._fields.append(field_)

    def insert(self, index: int, field_: Field) -> None:
        self._fields.insert(index, field_)

    def get(self, key) -> List[Value]:
        """All values stored under ``key`` in record order."""
        if isinstance(key, str):
            key = Key.parse(key)
        return [f.value for f in self._fields if f.key == key]

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def to_text(self) -> str:
        return "".join(f"{f.encode()}\n" for f in self._fields)

    def serialize(self, sink: BinaryIO) -> None:
        """Write every field, one line each, to an (encrypting) binary sink."""
        for f in self._fields:
            sink.write(f"{f.encode()}\n".encode("utf-8"))

    @classmethod
    def from_text(cls, text: str) -> "Record":
        """
        Parse newline-delimited ``key[!]=value`` lines.

        The final line does not need a trailing newline. Any line without a
        delimiter (blank lines included) aborts the whole decode.

        Raises:
            FormatViolation: On the first bad line.
        """
        lines = text.split("\n")
        if lines and lines[-1] == "":
            lines.pop()

        fields = []
        for number, line in enumerate(lines, start=1):
            if line.endswith("\r"):
                line = line[:-1]
            try:
                fields.append(Field.parse(line))
            except FormatViolation as e:
                raise FormatViolation(
                    f"{e} (line {number})", line=line, line_number=number
                ) from e
        return cls(fields)

    @classmethod
    def deserialize(cls, source: BinaryIO) -> "Record":
        """Read a decrypted binary stream to the end and parse it."""
        data = source.read()
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FormatViolation(f"Record is not valid UTF-8: {e}") from e
        return cls.from_text(text)

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def render(self, options: DisplayOptions, show_secrets: bool = False) -> List[str]:
        """
        Human-readable ``key: value`` lines for the fields ``options`` selects.

        Sensitive values are replaced by up to 16 asterisks unless
        ``show_secrets`` is true. The record itself is not modified.
        """
        return [f.render(show_secrets) for f in self._fields if options.selects(f.key)]

    def display(self, writer: TextIO, options: DisplayOptions, show_secrets: bool = False) -> None:
        for line in self.render(options, show_secrets):
            writer.write(line + "\n")
