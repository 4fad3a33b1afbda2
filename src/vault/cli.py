from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import os
import sys
from typing import List, Optional

from common.cache import ModelCatalogCache
from common.cloudcode import CloudCodeClient
from common.errors import VaultError
from common.oauth import OAuthClient
from common.sanitize import configure_logging
from state.files import CaptureDirectory
from state.store import AccountStore

from .config import VaultSettings
from .host import FileHostStateBridge
from .refresh import TokenRefreshCoordinator
from .switch import SwitchController


logger = logging.getLogger(__name__)

ENV_BACKUP_PASSWORD = "VAULT_BACKUP_PASSWORD"


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="credential-vault", description="Switch between saved host accounts.")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List saved accounts")

    cap = sub.add_parser("capture", help="Save the host's current session")
    cap.add_argument("--identity", help="Save under this identity instead of the session email")

    for name, help_text in (("restore", "Make a saved account the host's session"),
                            ("switch", "Save the current session, then restore another")):
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("identity")
        sp.add_argument("--wait", action="store_true", help="Wait if another switch is running")

    exp = sub.add_parser("export", help="Write an encrypted backup of one account")
    exp.add_argument("identity")
    exp.add_argument("--out", help="Destination file")
    exp.add_argument("--password")

    exp_all = sub.add_parser("export-all", help="Write an encrypted backup of every account")
    exp_all.add_argument("--out", required=True)
    exp_all.add_argument("--password")

    for name, help_text in (("import", "Import a single-account backup"),
                            ("import-all", "Import a multi-account backup")):
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("path")
        sp.add_argument("--password")

    rm = sub.add_parser("remove", help="Forget an account and delete its capture")
    rm.add_argument("identity")

    models = sub.add_parser("models", help="List models available to an account")
    models.add_argument("identity")
    return p


def _password(args: argparse.Namespace) -> str:
    pw = getattr(args, "password", None) or os.environ.get(ENV_BACKUP_PASSWORD)
    if pw:
        return pw
    return getpass.getpass("Backup password: ")


async def _run(args: argparse.Namespace, settings: VaultSettings) -> int:
    oauth: Optional[OAuthClient] = None
    if settings.oauth_client_id:
        oauth = OAuthClient(
            settings.oauth_client_id,
            client_secret=settings.oauth_client_secret,
            timeout=settings.http_timeout,
        )
    async with CloudCodeClient(base_url=settings.cloudcode_base_url, timeout=settings.http_timeout) as cloudcode:
        try:
            refresher = TokenRefreshCoordinator(
                cloudcode, oauth, cache=ModelCatalogCache(settings.model_cache_path)
            )
            controller = SwitchController(
                host=FileHostStateBridge(settings.host_state_path),
                store=AccountStore(),
                captures=CaptureDirectory(settings.captures_dir),
                refresher=refresher,
                exports_dir=settings.exports_dir,
            )
            controller.load_captures()
            return await _dispatch(args, controller)
        finally:
            if oauth is not None:
                await oauth.aclose()


async def _dispatch(args: argparse.Namespace, controller: SwitchController) -> int:
    cmd = args.command
    if cmd == "list":
        active = controller.active_identity()
        for account in controller.list_accounts():
            marker = "*" if account.identity == active else " "
            print(f"{marker} {account.identity}  [{account.token_state.value}]")
    elif cmd == "capture":
        account = await controller.capture(args.identity)
        print(f"Captured {account.identity}")
    elif cmd == "restore":
        await controller.restore(args.identity, blocking=args.wait)
        print(f"Restored {args.identity}")
    elif cmd == "switch":
        await controller.switch_to(args.identity, blocking=args.wait)
        print(f"Switched to {args.identity}")
    elif cmd == "export":
        path = controller.export_backup(args.identity, _password(args), args.out)
        print(f"Exported {args.identity} to {path}")
    elif cmd == "export-all":
        path = controller.export_bundle(_password(args), args.out)
        print(f"Exported all accounts to {path}")
    elif cmd == "import":
        account = controller.import_backup(args.path, _password(args))
        print(f"Imported {account.identity}")
    elif cmd == "import-all":
        accounts = controller.import_bundle(args.path, _password(args))
        print(f"Imported {len(accounts)} accounts")
    elif cmd == "remove":
        controller.remove(args.identity)
        print(f"Removed {args.identity}")
    elif cmd == "models":
        models = await controller.load_models(args.identity)
        if models is None:
            print(f"{args.identity} is the active host account; session not validated")
        else:
            for model_id in sorted(models):
                print(model_id)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        settings = VaultSettings.from_env()
    except RuntimeError as ex:
        print(f"error: {ex}", file=sys.stderr)
        return 2
    configure_logging(settings.log_level)

    try:
        return asyncio.run(_run(args, settings))
    except (VaultError, ValueError) as ex:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {ex}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
