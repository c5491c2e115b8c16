# Vault - Filesystem Storage Backend
#
# Layout:
#     <root>/
#         entries/
#             <hyphenated-uuid>.<extension>
#
# Path objects validate their kind on construction (a Directory may not be a
# file, an EntryFile may not be a directory) but never create anything.

import logging
import os
from pathlib import Path
from typing import BinaryIO, Dict, Set, Union
from uuid import UUID

from ..errors import AlreadyExists, IsADirectory, NotADirectory, VaultIOError
from .base import StorageBackend, StorageReference

logger = logging.getLogger(__name__)

ENTRIES_DIR = "entries"

# Owner-only permissions for everything the vault creates
DIR_MODE = 0o700
FILE_MODE = 0o600

PathLike = Union[str, os.PathLike]


class Directory:
    """
    A path validated as a directory, if anything exists there.

    Raises:
        NotADirectory: If a non-directory exists at ``path``.
    """

    def __init__(self, path: PathLike):
        self.path = Path(path)
        if self.path.exists() and not self.path.is_dir():
            raise NotADirectory(f"Not a directory: {self.path}")

    def exists(self) -> bool:
        return self.path.is_dir()

    def subdirectory(self, name: PathLike) -> "Directory":
        return Directory(self.path / name)

    def subfile(self, name: PathLike, entry_id: UUID) -> "EntryFile":
        return EntryFile(self.path / name, entry_id)

    def __str__(self) -> str:
        return str(self.path)

    def __repr__(self) -> str:
        return f"Directory({str(self.path)!r})"


class EntryFile(StorageReference):
    """
    A path validated as a regular file, if anything exists there.

    Raises:
        IsADirectory: If a directory exists at ``path``.
    """

    def __init__(self, path: PathLike, entry_id: UUID):
        super().__init__(entry_id)
        self.path = Path(path)
        if self.path.is_dir():
            raise IsADirectory(f"Is a directory: {self.path}")

    def exists(self) -> bool:
        return self.path.exists()

    def reader(self) -> BinaryIO:
        try:
            return open(self.path, "rb")
        except IsADirectoryError as e:
            raise IsADirectory(f"Is a directory: {self.path}") from e
        except OSError as e:
            raise VaultIOError(f"Failed to open entry {self.path}: {e}") from e

    def writer(self) -> BinaryIO:
        try:
            # O_EXCL: never open an existing entry for writing
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, FILE_MODE)
        except FileExistsError as e:
            raise AlreadyExists(f"Entry already exists: {self.path}") from e
        except IsADirectoryError as e:
            raise IsADirectory(f"Is a directory: {self.path}") from e
        except OSError as e:
            raise VaultIOError(f"Failed to create entry {self.path}: {e}") from e
        return os.fdopen(fd, "wb")

    def __str__(self) -> str:
        return str(self.path)

    def __repr__(self) -> str:
        return f"EntryFile({str(self.path)!r})"


class FilesystemStorage(StorageBackend):
    """
    Entries stored as one file each under ``<root>/entries``.

    Args:
        root: Vault root directory (need not exist until ``initialize``)
        extension: File extension for entries, usually the crypto backend's
    """

    def __init__(self, root: PathLike, extension: str):
        self.root = Directory(root)
        self.extension = extension.lstrip(".")
        # Ids handed out by this instance, written or not
        self._allocated: Set[UUID] = set()

    @property
    def entries_path(self) -> Directory:
        return self.root.subdirectory(ENTRIES_DIR)

    def _filename(self, entry_id: UUID) -> str:
        return f"{entry_id}.{self.extension}"

    def _require_initialized(self) -> Directory:
        entries_dir = self.entries_path
        if not entries_dir.exists():
            raise VaultIOError(f"Vault is not initialized: {entries_dir} does not exist")
        return entries_dir

    def initialize(self) -> None:
        entries_dir = self.entries_path
        if entries_dir.exists():
            raise AlreadyExists(f"Vault already exists: {entries_dir}")
        try:
            entries_dir.path.mkdir(mode=DIR_MODE, parents=True)
        except FileExistsError as e:
            raise AlreadyExists(f"Vault already exists: {entries_dir}") from e
        except OSError as e:
            raise VaultIOError(f"Failed to create vault at {self.root}: {e}") from e
        logger.info("Initialized vault at %s", self.root)

    def entries(self) -> Dict[UUID, EntryFile]:
        entries_dir = self._require_initialized()
        try:
            children = list(os.scandir(entries_dir.path))
        except OSError as e:
            raise VaultIOError(f"Failed to read {entries_dir}: {e}") from e

        found: Dict[UUID, EntryFile] = {}
        for child in children:
            path = Path(child.path)
            if child.is_dir():
                logger.debug("Skipping directory %s", path)
                continue
            if path.suffix != f".{self.extension}":
                logger.debug("Skipping file with foreign extension %s", path)
                continue
            try:
                entry_id = UUID(path.stem)
            except ValueError:
                logger.debug("Skipping file with non-UUID name %s", path)
                continue
            # Only the canonical hyphenated form names an entry
            if str(entry_id) != path.stem:
                logger.debug("Skipping non-canonical UUID filename %s", path)
                continue
            found[entry_id] = EntryFile(path, entry_id)

        return found

    def add_entry(self, entry_id: UUID) -> EntryFile:
        entries_dir = self._require_initialized()
        reference = entries_dir.subfile(self._filename(entry_id), entry_id)
        if entry_id in self._allocated or reference.exists():
            raise AlreadyExists(f"Entry {entry_id} already exists: {reference}")
        self._allocated.add(entry_id)
        return reference
