# Vault - Storage Backends

from .base import StorageBackend, StorageReference
from .filesystem import Directory, EntryFile, FilesystemStorage

__all__ = [
    "Directory",
    "EntryFile",
    "FilesystemStorage",
    "StorageBackend",
    "StorageReference",
]
