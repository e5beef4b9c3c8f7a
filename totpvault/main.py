"""TOTPVault administrative entrypoint."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from totpvault import __version__
from totpvault.errors import ConfigurationError, ParseError, VaultError

logger = logging.getLogger("totpvault")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="totpvault", description="Synchronized TOTP seed vault"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--data-dir", type=Path, default=None, help="override the data directory"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_init = sub.add_parser("init", help="create config.ini with a fresh encryption key")
    p_init.add_argument("--database", type=Path, default=None)

    p_code = sub.add_parser("code", help="print the current code for an otpauth URI")
    p_code.add_argument("uri")
    p_code.add_argument("--at", type=float, default=None, help="unix time to use")

    p_list = sub.add_parser("list", help="list an owner's active entries")
    p_list.add_argument("--owner", type=int, required=True)

    p_import = sub.add_parser("import", help="import a JSON export or a URI list file")
    p_import.add_argument("--owner", type=int, required=True)
    p_import.add_argument("--replace", action="store_true", help="tombstone existing entries first")
    p_import.add_argument("--uris", action="store_true", help="file holds one otpauth URI per line")
    p_import.add_argument("file", type=Path)

    p_export = sub.add_parser("export", help="export an owner's entries (contains secrets)")
    p_export.add_argument("--owner", type=int, required=True)
    p_export.add_argument("--uri", action="store_true", help="export otpauth URIs")
    p_export.add_argument("--output", type=Path, default=None)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Application entry point."""
    # 1. Check dependencies
    from totpvault import check_dependencies

    check_dependencies()

    args = _build_parser().parse_args(argv)

    # 2. Resolve data directory
    from totpvault.paths import get_data_dir, get_log_dir

    data_dir = args.data_dir or get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)

    # 3. Initialise logging
    from totpvault.logging_setup import setup_secure_logging

    setup_secure_logging(get_log_dir(data_dir))

    try:
        return _dispatch(args, data_dir)
    except ConfigurationError as exc:
        logger.critical("Configuration error: %s", exc)
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    except VaultError as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


def _dispatch(args: argparse.Namespace, data_dir: Path) -> int:
    if args.command == "init":
        from totpvault.config import generate_key_file

        path = generate_key_file(data_dir, args.database)
        print(f"Configuration written to {path}")
        return 0

    if args.command == "code":
        from totpvault.formats.uri import parse_uri
        from totpvault.otp.generator import CodeGenerator

        entry = parse_uri(args.uri)
        result = CodeGenerator.generate(
            entry.secret, entry.algorithm, entry.digits, entry.period, at=args.at
        )
        print(f"{result.code} ({result.time_remaining}s remaining)")
        return 0

    # Everything below needs the key and the database.
    from totpvault.config import Config
    from totpvault.crypto.cipher import EnvelopeCipher
    from totpvault.storage.sqlite import SqliteVaultStore

    cipher = EnvelopeCipher(Config.get_encryption_key(data_dir))
    store = SqliteVaultStore(Config.get_database_path(data_dir))
    try:
        store.add_owner(args.owner)
        return _run_vault_command(args, store, cipher)
    finally:
        store.close()


def _run_vault_command(args, store, cipher) -> int:
    from totpvault.transfer.orchestrator import ImportExportOrchestrator
    from totpvault.vault.manager import VaultManager

    if args.command == "list":
        entries = VaultManager(store, cipher).list_entries(args.owner)
        _emit({"entries": [e.to_public_dict() for e in entries]})
        return 0

    orchestrator = ImportExportOrchestrator(store, cipher)

    if args.command == "import":
        try:
            raw = args.file.read_bytes()
        except OSError as exc:
            raise VaultError(f"Cannot read {args.file}: {exc.strerror or exc}") from exc
        if args.uris:
            try:
                text = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise ParseError(f"{args.file} is not UTF-8 text") from exc
            lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
            result = orchestrator.import_uris(args.owner, lines)
        else:
            result = orchestrator.import_bulk(args.owner, raw, replace_all=args.replace)
        _emit(result.to_dict())
        return 0 if result.failed_count == 0 else 1

    if args.command == "export":
        if args.uri:
            payload = orchestrator.export_uri_list(args.owner)
        else:
            payload = orchestrator.export_all(args.owner)
        _emit(payload, args.output)
        return 0

    raise VaultError(f"Unknown command: {args.command}")


def _emit(payload: dict, output: Path | None = None) -> None:
    text = json.dumps(payload, indent=2)
    if output is None:
        print(text)
        return
    # exports carry plaintext seeds: owner-only file
    try:
        fd = os.open(output, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    except OSError as exc:
        raise VaultError(f"Cannot write {output}: {exc.strerror or exc}") from exc
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(text + "\n")


if __name__ == "__main__":
    sys.exit(main())
