# Vaultboard - Command Line Entry Point
#
# Drives one VaultStore the way the vaults view does: open the matching
# modal, fill the form fields, run the action, close the modal.
#
# Exit codes: 0 success, 1 backend failure, 2 invalid input.

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from . import __version__
from .core import EventSeverity, EventType, Settings, configure_audit_logger, load_settings
from .vault import GatewayError, RpcVaultGateway, VaultGateway, VaultStore, VaultValidationFailed

EXIT_OK = 0
EXIT_GATEWAY_ERROR = 1
EXIT_INVALID = 2


def build_gateway(settings: Settings) -> VaultGateway:
    return RpcVaultGateway(
        settings.rpc_url,
        timeout=settings.request_timeout,
        max_retries=settings.max_retries,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vaultboard",
        description="Manage account vaults on a node over JSON-RPC",
    )
    parser.add_argument(
        "--rpc-url",
        default=None,
        help="Node JSON-RPC endpoint (default: $VAULTBOARD_RPC_URL or http://127.0.0.1:8545)"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-request timeout in seconds (default: $VAULTBOARD_TIMEOUT or 30)"
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Read settings from this .env file"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Vaultboard v{__version__}"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List vaults and whether they are open")

    create = sub.add_parser("create", help="Create a new vault")
    create.add_argument("name")
    create.add_argument("--password", required=True)
    create.add_argument("--repeat", default=None, help="Password confirmation (default: same as --password)")
    create.add_argument("--description", default="")
    create.add_argument("--hint", default="", help="Password hint stored with the vault")

    open_ = sub.add_parser("open", help="Open (unlock) a vault")
    open_.add_argument("name")
    open_.add_argument("--password", required=True)

    close = sub.add_parser("close", help="Close (lock) a vault")
    close.add_argument("name")

    move = sub.add_parser("move", help="Move accounts into or out of a vault")
    move.add_argument("vault")
    move.add_argument("--add", nargs="*", default=[], metavar="ADDRESS")
    move.add_argument("--remove", nargs="*", default=[], metavar="ADDRESS")

    return parser


def _print_vaults(store: VaultStore) -> None:
    if not store.vaults:
        print("No vaults found.")
        return
    for vault in store.vaults:
        status = "open" if vault.is_open else "closed"
        line = f"{vault.name:<24} {status:<7}"
        if vault.meta.description:
            line += f" {vault.meta.description}"
        print(line.rstrip())


async def run_command(args: argparse.Namespace, store: VaultStore) -> int:
    await store.load_vaults()

    if args.command == "list":
        _print_vaults(store)
        return EXIT_OK

    try:
        if args.command == "create":
            store.open_create_modal()
            with store.transaction():
                store.set_vault_name(args.name)
                store.set_vault_description(args.description)
                store.set_vault_password(args.password)
                store.set_vault_password_repeat(
                    args.password if args.repeat is None else args.repeat
                )
                store.set_vault_password_hint(args.hint)
            try:
                await store.create_vault()
            finally:
                store.close_create_modal()
            print(f"Created vault {args.name}")

        elif args.command == "open":
            store.open_unlock_modal(args.name)
            store.set_vault_password(args.password)
            try:
                await store.open_vault()
            finally:
                store.close_unlock_modal()
            print(f"Opened vault {args.name}")

        elif args.command == "close":
            store.open_lock_modal(args.name)
            try:
                await store.close_vault()
            finally:
                store.close_lock_modal()
            print(f"Closed vault {args.name}")

        elif args.command == "move":
            store.open_accounts_modal(args.vault)
            for address in list(args.add) + list(args.remove):
                store.toggle_selected_account(address)
            try:
                await store.move_accounts(args.vault, args.add, args.remove)
            finally:
                store.close_accounts_modal()
            print(
                f"Moved {len(args.add)} account(s) into and "
                f"{len(args.remove)} account(s) out of {args.vault}"
            )

    except VaultValidationFailed as exc:
        for error in exc.errors:
            print(f"Error: {error.message}", file=sys.stderr)
        return EXIT_INVALID
    except GatewayError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_GATEWAY_ERROR

    return EXIT_OK


async def _main_async(args: argparse.Namespace, settings: Settings) -> int:
    audit = configure_audit_logger(settings.audit_log_dir)
    gateway = build_gateway(settings)
    store = VaultStore(gateway, audit_logger=audit)

    audit.log_event(
        event_type=EventType.SESSION_START,
        severity=EventSeverity.INFO,
        message="Vaultboard session starting",
        details={"version": __version__, "command": args.command, "rpc_url": settings.rpc_url},
    )
    try:
        return await run_command(args, store)
    finally:
        close = getattr(gateway, "close", None)
        if close is not None:
            await close()
        audit.log_event(
            event_type=EventType.SESSION_STOP,
            severity=EventSeverity.INFO,
            message="Vaultboard session finished",
        )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the ``vaultboard`` command."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    settings = load_settings(args.env_file).with_overrides(
        rpc_url=args.rpc_url,
        request_timeout=args.timeout,
    )

    try:
        return asyncio.run(_main_async(args, settings))
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_GATEWAY_ERROR


if __name__ == "__main__":
    sys.exit(main())
