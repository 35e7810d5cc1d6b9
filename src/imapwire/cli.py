# =============================================================================
# imapwire Command Line
# =============================================================================
# A small command line front-end to the session engine, mostly useful for
# checking an account configuration against a real server:
#
#   imapwire folders            # folder tree of the default account
#   imapwire folders --flat     # one path per line
#   imapwire idle INBOX         # print new messages until Ctrl-C
#   imapwire quota              # quota roots and usage
#   imapwire --paths            # where the config file lives
#
# Exit codes: 0 success, 1 configuration error, 2 IMAP error.
# =============================================================================

import argparse
import logging
import sys
from pathlib import Path

from imapwire import __app_name__, __version__
from imapwire.config import Config, ConfigError, print_paths
from imapwire.core import Folder
from imapwire.imap import FolderFetchingError, IMAPClient, IMAPError

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Build the parser and parse ``argv`` (sys.argv when None)."""
    parser = argparse.ArgumentParser(
        prog=__app_name__,
        description="imapwire: a synchronous IMAP session engine",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--paths",
        action="store_true",
        help="Show where the config file is looked up, then exit",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Config file to use instead of the XDG location",
    )

    parser.add_argument(
        "--account",
        help="Account name from the config file (default: default_account)",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging, including the protocol trace",
    )

    commands = parser.add_subparsers(dest="command")

    folders = commands.add_parser("folders", help="List folders")
    folders.add_argument("--flat", action="store_true", help="Print full paths, one per line")

    idle = commands.add_parser("idle", help="Watch a folder for new messages")
    idle.add_argument("folder", help="Folder to watch, e.g. INBOX")
    idle.add_argument("--timeout", type=int, default=300, help="IDLE refresh interval in seconds")

    commands.add_parser("quota", help="Show quota roots and usage for INBOX")

    return parser.parse_args(argv)


def print_tree(folders: list[Folder], depth: int = 0) -> None:
    for folder in folders:
        marker = " (noselect)" if folder.no_select else ""
        print(f"{'  ' * depth}{folder.name}{marker}")
        print_tree(folder.children, depth + 1)


def run_command(client: IMAPClient, args: argparse.Namespace) -> None:
    if args.command == "folders":
        folders = client.get_folders(hierarchical=not args.flat)
        if args.flat:
            for folder in folders:
                print(folder.full_name)
        else:
            print_tree(folders)

    elif args.command == "idle":
        folder = client.get_folder(args.folder)
        if folder is None:
            raise FolderFetchingError(f"No such folder: {args.folder}")

        print(f"Watching {folder.full_name}, press Ctrl-C to stop")
        try:
            for event in folder.idle_events(timeout=args.timeout):
                message = event.message
                sender = ", ".join(str(a) for a in message.from_)
                print(f"[{event.folder}] #{event.msgn} {sender}: {message.subject}")
        except KeyboardInterrupt:
            print("Stopped")

    elif args.command == "quota":
        result = client.get_quota_root("INBOX")
        print(f"Roots: {', '.join(result['roots']) or '-'}")
        for root, resources in result["quotas"].items():
            for resource, values in resources.items():
                print(f"{root or '(root)'} {resource}: {values['usage']} / {values['limit']}")


def main(argv: list[str] | None = None) -> int:
    """
    Console entry point.

    Loads the config, resolves the account and runs one command on a fresh
    session that is logged out afterwards.

    Returns:
        Process exit code (see the module header).
    """
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.paths:
        print_paths()
        return 0

    if not args.command:
        print("No command given; try --help", file=sys.stderr)
        return 1

    try:
        config = Config.load(args.config)
        account = config.account(args.account)
        if args.debug:
            account.debug = True
        client = IMAPClient(account)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    try:
        with client:
            run_command(client, args)
    except IMAPError as e:
        cause = f" ({e.__cause__})" if e.__cause__ else ""
        logger.error(f"{e}{cause}")
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
