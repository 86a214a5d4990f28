"""
Command line interface.

Every mutating command is a thin wrapper over :class:`SessionRouter` or
:class:`AccessGate` and writes the configuration document immediately.
"""
from __future__ import annotations

import argparse
import sys
import textwrap
from datetime import datetime
from typing import Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .config.models import AccessPolicy, PairingStatus
from .config.store import ConfigStore
from .errors import RelaycordError
from .plugin import build_status
from .routing.access_gate import AccessGate
from .routing.session_router import SessionRouter

console = Console()


def _when(ms: Optional[int]) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M") if ms else "-"


def _store(args: argparse.Namespace) -> ConfigStore:
    return ConfigStore(args.config)


# ----------------------------------------------------------------------
# General
# ----------------------------------------------------------------------
def cmd_run(args: argparse.Namespace) -> int:
    from .main import RelaycordApp

    return RelaycordApp(_store(args), web=args.web).run()


def cmd_web(args: argparse.Namespace) -> int:
    from .web.flask_app import run_app

    run_app(_store(args), host=args.host, port=args.port)
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    status = build_status(_store(args))
    table = Table(show_header=False, box=None)
    for key, value in status.items():
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)
    return 0


def cmd_token_set(args: argparse.Namespace) -> int:
    with _store(args).transaction() as config:
        config.token = args.token.strip()
    console.print("Token saved.")
    return 0


def cmd_guild_set(args: argparse.Namespace) -> int:
    with _store(args).transaction() as config:
        config.guild_id = args.guild_id or None
    console.print(f"Guild restriction: {args.guild_id or 'none'}")
    return 0


def cmd_access(args: argparse.Namespace) -> int:
    policy = AccessGate(_store(args)).set_policy(args.policy)
    console.print(f"Access policy: {policy.value}")
    return 0


def cmd_autocreate(args: argparse.Namespace) -> int:
    enabled = args.state == "on"
    SessionRouter(_store(args)).set_auto_create(enabled)
    console.print(f"Auto-create: {args.state}")
    return 0


# ----------------------------------------------------------------------
# Pairing
# ----------------------------------------------------------------------
def cmd_pairing_list(args: argparse.Namespace) -> int:
    status = None if args.all else PairingStatus.PENDING
    requests = AccessGate(_store(args)).list_requests(status)
    if not requests:
        console.print("No pairing requests.")
        return 0
    table = Table("Code", "User", "Session", "Where", "Status", "Created")
    for code, req in sorted(requests.items(), key=lambda item: item[1].created_at):
        where = f"{req.guild_name or 'DM'} #{req.channel_name}" if req.channel_name else (req.guild_name or "DM")
        table.add_row(code, f"{req.user_name} ({req.user_id})", req.session, where, req.status.value, _when(req.created_at))
    console.print(table)
    return 0


def cmd_pairing_approve(args: argparse.Namespace) -> int:
    req = AccessGate(_store(args)).approve(args.code)
    console.print(f"Approved {req.user_name} ({req.user_id}) for {req.session}.")
    return 0


def cmd_pairing_reject(args: argparse.Namespace) -> int:
    req = AccessGate(_store(args)).reject(args.code)
    console.print(f"Rejected {req.user_name} ({req.user_id}).")
    return 0


# ----------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------
def cmd_users_list(args: argparse.Namespace) -> int:
    users = AccessGate(_store(args)).list_users()
    if not users:
        console.print("No users.")
        return 0
    table = Table("User", "Sessions", "Paired", "Blocked")
    for user_id, grant in sorted(users.items()):
        blocked = f"yes ({grant.block_reason})" if grant.blocked and grant.block_reason else ("yes" if grant.blocked else "no")
        table.add_row(user_id, ", ".join(sorted(grant.sessions)) or "-", _when(grant.paired_at), blocked)
    console.print(table)
    return 0


def cmd_users_grant(args: argparse.Namespace) -> int:
    AccessGate(_store(args)).grant(args.user, args.session)
    console.print(f"Granted {args.user} access to {args.session}.")
    return 0


def cmd_users_revoke(args: argparse.Namespace) -> int:
    if not AccessGate(_store(args)).revoke(args.user, args.session):
        print(f"ERROR: {args.user} has no matching grant", file=sys.stderr)
        return 1
    console.print(f"Revoked {args.user} from {args.session or 'all sessions'}.")
    return 0


def cmd_users_block(args: argparse.Namespace) -> int:
    AccessGate(_store(args)).block(args.user, args.reason)
    console.print(f"Blocked {args.user}.")
    return 0


def cmd_users_unblock(args: argparse.Namespace) -> int:
    if not AccessGate(_store(args)).unblock(args.user):
        print(f"ERROR: {args.user} is not blocked", file=sys.stderr)
        return 1
    console.print(f"Unblocked {args.user}.")
    return 0


# ----------------------------------------------------------------------
# Channel mappings
# ----------------------------------------------------------------------
def cmd_map(args: argparse.Namespace) -> int:
    SessionRouter(_store(args)).map_channel(
        args.channel, args.session, respond_to_all=args.all_messages, allowed_users=args.allow
    )
    console.print(f"Mapped {args.channel} -> {args.session}.")
    return 0


def cmd_unmap(args: argparse.Namespace) -> int:
    if not SessionRouter(_store(args)).unmap_channel(args.channel):
        print(f"ERROR: channel {args.channel} is not mapped", file=sys.stderr)
        return 1
    console.print(f"Unmapped {args.channel}.")
    return 0


def cmd_mappings(args: argparse.Namespace) -> int:
    mappings = SessionRouter(_store(args)).list_mappings()
    if not mappings:
        console.print("No channel mappings.")
        return 0
    table = Table("Channel", "Session", "Where", "All messages", "Allowed users")
    for channel_id, m in sorted(mappings.items()):
        where = f"{m.guild_name or '-'} #{m.channel_name}" if m.channel_name else "-"
        table.add_row(
            channel_id, m.session, where, "yes" if m.respond_to_all else "no", ", ".join(m.allowed_users or []) or "-"
        )
    console.print(table)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="relaycord",
        description="Discord bridge for assistant sessions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent(
            """
            Examples:
              relaycord token set <bot token>
              relaycord access paired
              relaycord pairing list
              relaycord pairing approve ABCD2345
              relaycord map 123456789012345678 support --all-messages
              relaycord run --web
            """
        ).strip(),
    )
    parser.add_argument("--config", default=None, help="Path to the config document (default: RELAYCORD_CONFIG)")

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_run = sub.add_parser("run", help="Connect to Discord and relay messages")
    p_run.add_argument("--web", action="store_true", help="Also serve the settings API")
    p_run.set_defaults(func=cmd_run)

    p_web = sub.add_parser("web", help="Serve the settings API only")
    p_web.add_argument("--host", default="127.0.0.1")
    p_web.add_argument("--port", type=int, default=5000)
    p_web.set_defaults(func=cmd_web)

    p_status = sub.add_parser("status", help="Show configuration summary")
    p_status.set_defaults(func=cmd_status)

    p_token = sub.add_parser("token", help="Manage the bot token")
    token_sub = p_token.add_subparsers(dest="token_cmd", required=True)
    p_token_set = token_sub.add_parser("set", help="Store the bot token")
    p_token_set.add_argument("token")
    p_token_set.set_defaults(func=cmd_token_set)

    p_guild = sub.add_parser("guild", help="Restrict the bot to one server")
    guild_sub = p_guild.add_subparsers(dest="guild_cmd", required=True)
    p_guild_set = guild_sub.add_parser("set", help="Set the server id (empty string clears it)")
    p_guild_set.add_argument("guild_id")
    p_guild_set.set_defaults(func=cmd_guild_set)

    p_access = sub.add_parser("access", help="Set the access policy")
    p_access.add_argument("policy", choices=[p.value for p in AccessPolicy])
    p_access.set_defaults(func=cmd_access)

    p_auto = sub.add_parser("autocreate", help="Toggle automatic sessions for unmapped channels")
    p_auto.add_argument("state", choices=["on", "off"])
    p_auto.set_defaults(func=cmd_autocreate)

    p_pairing = sub.add_parser("pairing", help="Review pairing requests")
    pairing_sub = p_pairing.add_subparsers(dest="pairing_cmd", required=True)
    p_pairing_list = pairing_sub.add_parser("list", help="List pending requests")
    p_pairing_list.add_argument("--all", action="store_true", help="Include approved and rejected requests")
    p_pairing_list.set_defaults(func=cmd_pairing_list)
    p_approve = pairing_sub.add_parser("approve", help="Approve a pairing code")
    p_approve.add_argument("code")
    p_approve.set_defaults(func=cmd_pairing_approve)
    p_reject = pairing_sub.add_parser("reject", help="Reject a pairing code")
    p_reject.add_argument("code")
    p_reject.set_defaults(func=cmd_pairing_reject)

    p_users = sub.add_parser("users", help="Manage user grants")
    users_sub = p_users.add_subparsers(dest="users_cmd", required=True)
    p_users_list = users_sub.add_parser("list", help="List users")
    p_users_list.set_defaults(func=cmd_users_list)
    p_grant = users_sub.add_parser("grant", help="Grant a user access to a session ('*' for all)")
    p_grant.add_argument("user")
    p_grant.add_argument("session")
    p_grant.set_defaults(func=cmd_users_grant)
    p_revoke = users_sub.add_parser("revoke", help="Revoke one session, or all when omitted")
    p_revoke.add_argument("user")
    p_revoke.add_argument("session", nargs="?")
    p_revoke.set_defaults(func=cmd_users_revoke)
    p_block = users_sub.add_parser("block", help="Block a user")
    p_block.add_argument("user")
    p_block.add_argument("--reason")
    p_block.set_defaults(func=cmd_users_block)
    p_unblock = users_sub.add_parser("unblock", help="Unblock a user")
    p_unblock.add_argument("user")
    p_unblock.set_defaults(func=cmd_users_unblock)

    p_map = sub.add_parser("map", help="Map a channel to a session")
    p_map.add_argument("channel")
    p_map.add_argument("session")
    p_map.add_argument("--all-messages", action="store_true", help="Answer every message, not only mentions")
    p_map.add_argument("--allow", nargs="+", metavar="USER", help="Only these user ids may use the channel")
    p_map.set_defaults(func=cmd_map)

    p_unmap = sub.add_parser("unmap", help="Remove a channel mapping")
    p_unmap.add_argument("channel")
    p_unmap.set_defaults(func=cmd_unmap)

    p_mappings = sub.add_parser("mappings", help="List channel mappings")
    p_mappings.set_defaults(func=cmd_mappings)

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return int(args.func(args))
    except RelaycordError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
