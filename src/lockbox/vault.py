# Vault - Entry Lifecycle
#
# Composes a crypto backend, a storage backend and the record format:
#
#   create:  Record -> encrypting sink -> writer of a fresh storage reference
#   list:    storage reference -> reader -> decrypting source -> Record -> lines
#
# Entries are write-once. Every stream opened here is closed before the
# operation returns, on success and on error.

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Union
from uuid import UUID, uuid4

from .config import Settings, load_settings
from .core import AuditLogger, EventSeverity, EventType, get_audit_logger
from .crypto import CryptoBackend, Recipient, Sealed, get_backend
from .errors import VaultError
from .record import DisplayOptions, Field, Insensitive, Key, Record, Sensitive
from .storage import FilesystemStorage, StorageBackend, StorageReference

logger = logging.getLogger(__name__)

SECRET_KEY = Key.parse("secret")


@dataclass
class RenderedEntry:
    """
    Display form of one entry.

    ``error`` is set (and ``lines`` empty) when the entry could not be read
    in non-strict listing.
    """
    entry_id: UUID
    location: str
    lines: List[str] = field(default_factory=list)
    error: Optional[VaultError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_text(self) -> str:
        if self.error is not None:
            return f"error: {self.error}\n"
        return "".join(line + "\n" for line in self.lines)


class Vault:
    """
    Entry lifecycle over pluggable crypto and storage.

    Args:
        crypto: Encryption scheme for every entry
        storage: Medium holding the entries
        audit: Audit logger (default: global audit logger)
        strict_list: Default for ``list_entries(strict=...)``
    """

    def __init__(
        self,
        crypto: CryptoBackend,
        storage: StorageBackend,
        audit: Optional[AuditLogger] = None,
        strict_list: bool = False,
    ):
        self.crypto = crypto
        self.storage = storage
        self._audit = audit
        self.strict_list = strict_list

    @property
    def audit(self) -> AuditLogger:
        if self._audit is None:
            self._audit = get_audit_logger()
        return self._audit

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize_vault(self) -> None:
        """
        Create the storage structure for a new vault.

        Raises:
            AlreadyExists: If the vault was already initialized.
        """
        try:
            self.storage.initialize()
        except VaultError as e:
            self.audit.log_vault_event(
                EventType.VAULT_ERROR,
                f"Initialization failed: {e}",
                severity=EventSeverity.CRITICAL,
            )
            raise
        self.audit.log_vault_event(EventType.VAULT_CREATED, "Vault initialized")

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @staticmethod
    def build_record(name: str, secret: str, fields: Iterable[Field] = ()) -> Record:
        """Name (insensitive) and secret (sensitive) first, then ``fields`` in order."""
        record = Record([
            Field(Key.NAME, Insensitive(name)),
            Field(SECRET_KEY, Sensitive(secret)),
        ])
        for f in fields:
            record.append(f)
        return record

    def _resolve_recipients(self, recipients: Sequence[Union[Recipient, str]]) -> List[Recipient]:
        return [
            self.crypto.parse_recipient(r) if isinstance(r, str) else r
            for r in recipients
        ]

    def write_record(self, reference: StorageReference, record: Record,
                     recipients: Sequence[Recipient]) -> None:
        """Encrypt ``record`` into the (new) object behind ``reference``."""
        writer = reference.writer()
        try:
            sink = self.crypto.encrypt(writer, recipients)
        except BaseException:
            writer.close()
            raise
        # Clean exit finalizes the ciphertext; an error leaves it truncated
        with sink:
            record.serialize(sink)

    def create_entry(
        self,
        name: str,
        secret: str,
        fields: Iterable[Field] = (),
        recipients: Sequence[Union[Recipient, str]] = (),
    ) -> str:
        """
        Encrypt a new entry and persist it under a fresh UUID.

        Args:
            name: Entry name (stored insensitive)
            secret: Entry secret (stored sensitive)
            fields: Additional fields, kept in order after name and secret
            recipients: Recipients (objects or their text form)

        Returns:
            Description of where the entry was stored.

        Raises:
            VaultError: Any crypto, storage or I/O failure. Nothing is retried.
        """
        record = self.build_record(name, secret, fields)
        resolved = self._resolve_recipients(recipients)

        entry_id = uuid4()
        try:
            # Nothing exists on disk until the recipients are known to be usable
            self.crypto.check_recipients(resolved)
            reference = self.storage.add_entry(entry_id)
            self.write_record(reference, record, resolved)
        except VaultError as e:
            self.audit.log_vault_event(
                EventType.VAULT_ERROR,
                f"Failed to create entry: {e}",
                details={"entry_id": str(entry_id), "error": type(e).__name__},
                severity=EventSeverity.CRITICAL,
            )
            raise

        location = str(reference)
        self.audit.log_vault_event(
            EventType.VAULT_ENTRY_ADDED,
            "Entry created",
            details={
                "entry_id": str(entry_id),
                "location": location,
                "field_count": len(record),
                "recipient_count": len(resolved),
                "backend": self.crypto.name,
            },
        )
        logger.info("Created entry %s at %s", entry_id, location)
        return location

    # ------------------------------------------------------------------
    # List
    # ------------------------------------------------------------------

    def read_entry(self, reference: StorageReference) -> Record:
        """Decrypt and parse one entry."""
        with reference.reader() as reader:
            with self.crypto.decrypt(reader) as source:
                return Record.deserialize(source)

    def list_entries(
        self,
        options: Optional[DisplayOptions] = None,
        show_secrets: bool = False,
        strict: Optional[bool] = None,
    ) -> List[RenderedEntry]:
        """
        Decrypt and render every entry, ordered by UUID.

        Args:
            options: Which fields to show (default: name, username, email, url)
            show_secrets: Reveal sensitive values instead of asterisks
            strict: Raise on the first unreadable entry instead of reporting
                    it in ``RenderedEntry.error`` (default: ``self.strict_list``)

        Raises:
            VaultError: If entries cannot be enumerated, or in strict mode on
                        the first unreadable entry.
        """
        if options is None:
            options = DisplayOptions.defaults()
        if strict is None:
            strict = self.strict_list

        entries = self.storage.entries()

        rendered: List[RenderedEntry] = []
        failures = 0
        for entry_id in sorted(entries):
            reference = entries[entry_id]
            location = str(reference)
            try:
                record = self.read_entry(reference)
            except VaultError as e:
                failures += 1
                self.audit.log_vault_event(
                    EventType.VAULT_ENTRY_FAILED,
                    f"Could not read entry: {e}",
                    details={"entry_id": str(entry_id), "error": type(e).__name__},
                    severity=EventSeverity.CRITICAL if strict else EventSeverity.ALERT,
                )
                if strict:
                    raise
                logger.warning("Skipping unreadable entry %s: %s", entry_id, e)
                rendered.append(RenderedEntry(entry_id, location, error=e))
                continue

            rendered.append(
                RenderedEntry(entry_id, location, record.render(options, show_secrets))
            )

        self.audit.log_vault_event(
            EventType.VAULT_ENTRY_LISTED,
            "Entries listed",
            details={
                "count": len(rendered),
                "failures": failures,
                "secrets_shown": show_secrets,
            },
        )
        return rendered


def build_crypto(settings: Settings) -> CryptoBackend:
    """Crypto backend named by ``settings``; sealed loads its identity file if present."""
    if settings.backend == Sealed.name:
        if settings.identity_file.exists():
            return Sealed.from_identity_file(settings.identity_file)
        return Sealed()
    return get_backend(settings.backend, strict=settings.strict_header)


def open_vault(settings: Optional[Settings] = None, audit: Optional[AuditLogger] = None) -> Vault:
    """Build a filesystem-backed Vault from configuration."""
    if settings is None:
        settings = load_settings()
    crypto = build_crypto(settings)
    storage = FilesystemStorage(settings.home, crypto.file_extension)
    if audit is None:
        audit = AuditLogger(settings.log_dir)
    return Vault(crypto, storage, audit=audit, strict_list=settings.strict_list)
