# Lockbox - Command Line Entry Point
#
#   lockbox init
#   lockbox keygen
#   lockbox new -n NAME [-s SECRET] [-r RECIPIENT]... [-k key=value]...
#   lockbox list [-a] [--no-default] [-d KEY]... [--show] [--quiet] [--strict]

import argparse
import getpass
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from . import __version__
from .config import BACKEND_CHOICES, load_settings
from .core import AuditLogger, EventType
from .crypto import Identity, Sealed, write_identity_file
from .errors import VaultError
from .record import DisplayOptions, Field
from .vault import Vault, open_vault


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lockbox",
        description="Local credential vault with per-entry encryption",
    )
    parser.add_argument("-p", "--path", help="Vault root (default: $LOCKBOX_HOME)")
    parser.add_argument("--backend", choices=BACKEND_CHOICES, help="Crypto backend")
    parser.add_argument("--version", action="version", version=f"lockbox {__version__}")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Initialize a vault")
    sub.add_parser("keygen", help="Generate an identity for the sealed backend")

    new = sub.add_parser("new", help="Create a new entry")
    new.add_argument("-n", "--name", help="Entry name (prompted if omitted)")
    new.add_argument("-s", "--secret", help="Entry secret (prompted, hidden, if omitted)")
    new.add_argument(
        "-r", "--recipient", action="append", default=[], dest="recipients",
        help="Recipient who can decrypt the entry (repeatable)",
    )
    new.add_argument(
        "-k", "--key", action="append", default=[], dest="pairs", metavar="KEY=VALUE",
        help="Extra field, split on the first '='; 'key!=value' marks it sensitive",
    )

    ls = sub.add_parser("list", help="List entries")
    ls.add_argument("-a", "--all", action="store_true", help="Show every field")
    ls.add_argument("--no-default", action="store_true",
                    help="Do not show name, username, email and url by default")
    ls.add_argument("-d", "--display", action="append", default=[], metavar="KEY",
                    help="Also show this key (repeatable)")
    ls.add_argument("--show", action="store_true", help="Reveal sensitive values")
    ls.add_argument("--quiet", action="store_true", help="Only print entry contents")
    ls.add_argument("--strict", action="store_true",
                    help="Stop at the first entry that cannot be read")

    return parser


def cmd_init(vault: Vault, settings) -> int:
    vault.initialize_vault()
    print(f"Successfully created vault at path: {settings.home}")
    return 0


def cmd_keygen(settings, audit: AuditLogger) -> int:
    identity = Identity.generate()
    write_identity_file(settings.identity_file, identity)
    audit.log_vault_event(
        EventType.IDENTITY_CREATED,
        "Identity generated",
        details={"path": str(settings.identity_file), "recipient": str(identity.recipient())},
    )
    print(f"Identity written to: {settings.identity_file}")
    print(f"Public key: {identity.recipient()}")
    return 0


def cmd_new(vault: Vault, args) -> int:
    name = args.name if args.name is not None else input("Entry Name: ").strip()
    secret = args.secret if args.secret is not None else getpass.getpass("Secret: ")
    fields = [Field.parse(pair) for pair in args.pairs]

    recipients: List = list(args.recipients)
    if not recipients and isinstance(vault.crypto, Sealed):
        recipients = vault.crypto.default_recipients()

    location = vault.create_entry(name, secret, fields=fields, recipients=recipients)
    print(f"Created new entry at path: {location}")
    return 0


def cmd_list(vault: Vault, args) -> int:
    options = DisplayOptions() if args.no_default else DisplayOptions.defaults()
    if args.all:
        options = DisplayOptions(show_all=True, enabled_keys=options.enabled_keys)
    options = options.with_keys(args.display)

    entries = vault.list_entries(
        options, show_secrets=args.show, strict=True if args.strict else None,
    )

    if not args.quiet:
        noun = "Entry" if len(entries) == 1 else "Entries"
        print(f"Found {len(entries)} {noun}")

    failed = 0
    for entry in entries:
        print("---")
        if entry.ok:
            sys.stdout.write(entry.to_text())
        else:
            failed += 1
            print(f"error: {entry.location}: {entry.error}", file=sys.stderr)
    return 1 if failed else 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    load_dotenv(override=False)
    environ = dict(os.environ)
    if args.path:
        environ["LOCKBOX_HOME"] = args.path
    if args.backend:
        environ["LOCKBOX_BACKEND"] = args.backend

    try:
        settings = load_settings(environ)
        audit = AuditLogger(settings.log_dir)

        if args.command == "keygen":
            return cmd_keygen(settings, audit)

        vault = open_vault(settings, audit=audit)
        if args.command == "init":
            return cmd_init(vault, settings)
        if args.command == "new":
            return cmd_new(vault, args)
        return cmd_list(vault, args)

    except (VaultError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
