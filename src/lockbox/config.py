"""
Configuration for Lockbox.

Settings come from environment variables, optionally seeded from a ``.env``
file (python-dotenv; real environment variables win):

    LOCKBOX_HOME           Vault root (default: ~/.local/share/lockbox)
    LOCKBOX_BACKEND        Crypto backend: sealed | transparent (default: sealed)
    LOCKBOX_IDENTITY_FILE  Identity file for the sealed backend
                           (default: $LOCKBOX_HOME/identity.txt)
    LOCKBOX_STRICT_LIST    Abort listing on the first bad entry (default: false)
    LOCKBOX_STRICT_HEADER  Reject transparent entries whose header lacks "---"
                           (default: false)
    LOCKBOX_LOG_DIR        Audit log directory (default: $LOCKBOX_HOME/logs)
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_HOME = Path("~/.local/share/lockbox")
DEFAULT_BACKEND = "sealed"
BACKEND_CHOICES = ("sealed", "transparent")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    home: Path
    backend: str
    identity_file: Path
    strict_list: bool
    log_dir: Path
    strict_header: bool = False


def get_env(environ: Mapping[str, str], name: str, default: str = "") -> str:
    return environ.get(name, default).strip()


def get_env_bool(environ: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got: {raw!r}")


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[Path] = None,
) -> Settings:
    """
    Build settings from the environment.

    Args:
        environ: Mapping to read instead of ``os.environ`` (no .env loading)
        dotenv_path: Explicit .env file; by default python-dotenv searches
                     upwards from the working directory

    Raises:
        ValueError: If a variable has an invalid value.
    """
    if environ is None:
        load_dotenv(dotenv_path=dotenv_path, override=False)
        environ = os.environ

    home = Path(get_env(environ, "LOCKBOX_HOME") or DEFAULT_HOME).expanduser()

    backend = (get_env(environ, "LOCKBOX_BACKEND") or DEFAULT_BACKEND).lower()
    if backend not in BACKEND_CHOICES:
        raise ValueError(
            f"LOCKBOX_BACKEND must be one of {', '.join(BACKEND_CHOICES)}, got: {backend!r}"
        )

    identity_file = get_env(environ, "LOCKBOX_IDENTITY_FILE")
    log_dir = get_env(environ, "LOCKBOX_LOG_DIR")

    return Settings(
        home=home,
        backend=backend,
        identity_file=Path(identity_file).expanduser() if identity_file else home / "identity.txt",
        strict_list=get_env_bool(environ, "LOCKBOX_STRICT_LIST", False),
        log_dir=Path(log_dir).expanduser() if log_dir else home / "logs",
        strict_header=get_env_bool(environ, "LOCKBOX_STRICT_HEADER", False),
    )
