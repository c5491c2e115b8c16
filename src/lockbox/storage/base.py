# Vault - Storage Backend Contract
#
# Storage knows nothing about encryption or record contents. It maps entry
# UUIDs to references, and references hand out byte streams.
#
# Overwrite protection is enforced twice: ``add_entry`` refuses a UUID that
# already exists, and ``writer`` refuses to open an object that already
# exists. There is no replace operation.

from abc import ABC, abstractmethod
from typing import BinaryIO, Dict
from uuid import UUID


class StorageReference(ABC):
    """
    Handle to one entry's persisted bytes.

    ``reader()`` may be called any number of times; every call returns a new
    independent stream owned by the caller.
    """

    def __init__(self, entry_id: UUID):
        self.entry_id = entry_id

    @abstractmethod
    def reader(self) -> BinaryIO:
        """
        Open a fresh binary reader over the persisted bytes.

        Raises:
            VaultIOError: If the entry cannot be opened.
        """

    @abstractmethod
    def writer(self) -> BinaryIO:
        """
        Create the persisted object and return a binary writer to it.

        Raises:
            AlreadyExists: If the object already exists (never truncates).
            VaultIOError: If it cannot be created.
        """

    @abstractmethod
    def __str__(self) -> str:
        """Human-readable location of the entry."""


class StorageBackend(ABC):
    """Medium that holds a vault's entries."""

    @abstractmethod
    def initialize(self) -> None:
        """
        Create the structure that holds entries.

        Raises:
            AlreadyExists: If the vault was already initialized.
        """

    @abstractmethod
    def entries(self) -> Dict[UUID, StorageReference]:
        """
        Snapshot of every valid entry currently stored.

        Artefacts that are not entries are skipped without error.
        """

    @abstractmethod
    def add_entry(self, entry_id: UUID) -> StorageReference:
        """
        Allocate a reference for a new entry.

        Raises:
            AlreadyExists: If an entry with ``entry_id`` exists.
        """
