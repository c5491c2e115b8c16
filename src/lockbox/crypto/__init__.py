# Vault - Crypto Backends
#
# Backends are selected by name once, at start-up. There is no plugin
# discovery: the set below is the full set.

from typing import Dict, Type

from .base import CryptoBackend, DecryptingSource, EncryptingSink, Recipient
from .sealed import Identity, Sealed, X25519Recipient, load_identities, write_identity_file
from .transparent import Transparent, TransparentRecipient

BACKENDS: Dict[str, Type[CryptoBackend]] = {
    Sealed.name: Sealed,
    Transparent.name: Transparent,
}


def get_backend(name: str, **options) -> CryptoBackend:
    """
    Build the crypto backend registered under ``name``.

    Raises:
        ValueError: If no backend has that name.
    """
    try:
        backend_cls = BACKENDS[name]
    except KeyError:
        raise ValueError(
            f"Unknown crypto backend {name!r} (choose from {', '.join(sorted(BACKENDS))})"
        ) from None
    return backend_cls(**options)


__all__ = [
    "BACKENDS",
    "CryptoBackend",
    "DecryptingSource",
    "EncryptingSink",
    "Identity",
    "Recipient",
    "Sealed",
    "Transparent",
    "TransparentRecipient",
    "X25519Recipient",
    "get_backend",
    "load_identities",
    "write_identity_file",
]
