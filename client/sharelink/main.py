"""Command-line entry point: login, share, open, watch and permission management."""

import argparse
import getpass
import json
import logging
import sys
import threading
from pathlib import Path
from typing import List, Optional

import httpx

from sharelink.api.client import ShareLinkAPI
from sharelink.auth.credentials import CredentialsStore
from sharelink.config import get_log_path
from sharelink.sync.agent import BatchResult, SyncAgent
from sharelink.sync.live import LiveChannel

log = logging.getLogger("sharelink.main")

PERMISSION_CHOICES = ("read", "write", "read-write")


def _setup_logging() -> None:
    """Configure logging to a file in the config dir and to stderr (INFO level)."""
    log_file = get_log_path()
    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    root = logging.getLogger("sharelink")
    root.setLevel(logging.DEBUG)
    root.handlers.clear()
    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(fmt)
    root.addHandler(fh)
    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(logging.INFO)
    ch.setFormatter(fmt)
    root.addHandler(ch)
    root.debug("Logging to %s", log_file)


class NotLoggedIn(Exception):
    pass


def _authed_api(args: argparse.Namespace) -> ShareLinkAPI:
    """API client with a fresh access token from the stored refresh token."""
    api = ShareLinkAPI(base_url=args.base_url)
    token = CredentialsStore().get_valid_access_token(api)
    if not token:
        raise NotLoggedIn("Not logged in. Run: sharelink login EMAIL")
    api.set_access_token(token)
    return api


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


def _report(result: BatchResult, verb: str) -> int:
    print(f"{verb}: {result.summary()}")
    for path, reason in sorted(result.failed.items()):
        print(f"  failed  {path}: {reason}")
    for path, reason in sorted(result.skipped.items()):
        print(f"  skipped {path}: {reason}")
    return 0 if result.ok else 2


def cmd_login(args: argparse.Namespace) -> int:
    api = ShareLinkAPI(base_url=args.base_url)
    password = args.password or getpass.getpass("Password: ")
    data = api.authenticate(args.email, password)
    CredentialsStore().set_stored(args.email.strip().lower(), data["refresh_token"])
    print(("Registered and logged in as " if data.get("registered") else "Logged in as ") + args.email)
    return 0


def cmd_logout(args: argparse.Namespace) -> int:
    CredentialsStore().clear_stored()
    print("Logged out")
    return 0


def cmd_whoami(args: argparse.Namespace) -> int:
    print(_authed_api(args).me()["email"])
    return 0


def cmd_projects(args: argparse.Namespace) -> int:
    for project in _authed_api(args).list_projects():
        print(f"{project['name']}\t{project['owner']}\t{project.get('role') or ''}")
    return 0


def cmd_share(args: argparse.Namespace) -> int:
    """Create the project (if needed), upload the workspace and print the share link."""
    api = _authed_api(args)
    root = Path(args.dir).resolve()
    name = args.name or root.name
    link = api.create_project_link(name)
    result = SyncAgent(api, name, root).upload_project()
    code = _report(result, "Upload")
    print(f"Share link: {link['link']}")
    return code


def cmd_open(args: argparse.Namespace) -> int:
    """Resolve a share link and download the project into a folder."""
    api = _authed_api(args)
    summary = api.resolve_link(args.link)
    root = Path(args.dir or summary["name"]).resolve()
    agent = SyncAgent(api, summary["name"], root, owner=summary["owner"])
    code = _report(agent.download_project(), "Download")
    print(f"Opened {summary['name']} (owner {summary['owner']}) in {root}")
    return code


def cmd_permissions(args: argparse.Namespace) -> int:
    _print_json(_authed_api(args).get_permissions(args.name, owner=args.owner))
    return 0


def cmd_grant(args: argparse.Namespace) -> int:
    """Grant a user a permission, or set public access when no --email is given."""
    api = _authed_api(args)
    _print_json(api.set_permissions(args.name, args.permission, email=args.email, owner=args.owner))
    return 0


def cmd_revoke(args: argparse.Namespace) -> int:
    api = _authed_api(args)
    _print_json(api.revoke_permission(args.name, email=args.email, owner=args.owner))
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    """Push local edits on a poll loop and apply remote edits from the live channel."""
    api = _authed_api(args)
    creds = CredentialsStore()
    root = Path(args.dir).resolve()
    agent = SyncAgent(api, args.name, root, owner=args.owner)
    stop = threading.Event()
    live: Optional[LiveChannel] = None

    def token_provider() -> Optional[str]:
        token = creds.get_valid_access_token(api)
        if token:
            api.set_access_token(token)
        return token

    if not args.no_live:
        live = LiveChannel(api.base_url, token_provider, agent.apply_event)
        live.join(args.name, args.owner)
        live.start()
    print(f"Watching {root} for project {args.name} (Ctrl+C to stop)")
    try:
        agent.watch(stop, interval=args.interval, refresh_token=token_provider)
    except KeyboardInterrupt:
        stop.set()
    finally:
        if live is not None:
            live.stop()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sharelink", description="Share a code project and keep it in sync.")
    parser.add_argument("--base-url", default=None, help="Backend URL (default: config or SHARELINK_BASE_URL)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("login", help="Log in, or register a new account")
    p.add_argument("email")
    p.add_argument("--password", help="Prompted when omitted")
    p.set_defaults(func=cmd_login)

    sub.add_parser("logout", help="Forget stored credentials").set_defaults(func=cmd_logout)
    sub.add_parser("whoami", help="Show the logged-in user").set_defaults(func=cmd_whoami)
    sub.add_parser("projects", help="List projects you own or were granted").set_defaults(func=cmd_projects)

    p = sub.add_parser("share", help="Upload a folder and print its share link")
    p.add_argument("--dir", default=".", help="Workspace folder (default: current directory)")
    p.add_argument("--name", help="Project name (default: folder name)")
    p.set_defaults(func=cmd_share)

    p = sub.add_parser("open", help="Download a shared project from its link")
    p.add_argument("link", help="Share URL or link id")
    p.add_argument("--dir", help="Target folder (default: ./<project name>)")
    p.set_defaults(func=cmd_open)

    for name, func, help_text in (
        ("permissions", cmd_permissions, "Show public access and grants"),
        ("grant", cmd_grant, "Grant a user (or the public) a permission"),
        ("revoke", cmd_revoke, "Revoke a user's grant, or public access without --email"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("name", help="Project name")
        p.add_argument("--owner", help="Owner email when the name is ambiguous")
        if name == "grant":
            p.add_argument("permission", choices=PERMISSION_CHOICES)
        if name in ("grant", "revoke"):
            p.add_argument("--email", help="User email; omit for public access")
        p.set_defaults(func=func)

    p = sub.add_parser("watch", help="Keep a folder in sync with a project")
    p.add_argument("name", help="Project name")
    p.add_argument("--dir", default=".", help="Workspace folder (default: current directory)")
    p.add_argument("--owner", help="Owner email when the name is ambiguous")
    p.add_argument("--interval", type=float, default=None, help="Seconds between local scans")
    p.add_argument("--no-live", action="store_true", help="Do not listen for remote changes")
    p.set_defaults(func=cmd_watch)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run the ShareLink command line."""
    args = build_parser().parse_args(argv)
    _setup_logging()
    try:
        return args.func(args)
    except NotLoggedIn as e:
        print(str(e), file=sys.stderr)
        return 1
    except httpx.HTTPStatusError as e:
        try:
            detail = e.response.json().get("detail")
        except ValueError:
            detail = e.response.text
        log.debug("Request failed: %s", e)
        print(f"Error {e.response.status_code}: {detail}", file=sys.stderr)
        return 1
    except httpx.HTTPError as e:
        print(f"Cannot reach server: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
