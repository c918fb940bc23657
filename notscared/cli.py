"""
Administrative commands that run against the database directly.

Usage:
    notscared create-user <email> <username> <password> [--admin]
    notscared sweep-sessions
    notscared serve
"""
import argparse
import sys

from notscared.auth import cleanup_expired_sessions
from notscared.config import get_settings
from notscared.database import Database
from notscared.exceptions import RegistrationError
from notscared.logger import setup_logger
from notscared.users import create_user


def cmd_create_user(database: Database, args) -> int:
    db = database.session()
    try:
        user = create_user(db, args.email, args.username, args.password, is_admin=args.admin)
    except RegistrationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        db.close()

    print(f"Created user: {user.username} ({user.email}){' [admin]' if user.is_admin else ''}")
    return 0


def cmd_sweep_sessions(database: Database, args) -> int:
    db = database.session()
    try:
        removed = cleanup_expired_sessions(db)
    finally:
        db.close()

    print(f"Removed {removed} expired session(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="notscared", description="notscared administration")
    parser.add_argument("--database-url", help="Override NOTSCARED_DATABASE_URL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create-user", help="Create a user without an invite")
    create.add_argument("email")
    create.add_argument("username")
    create.add_argument("password")
    create.add_argument("--admin", action="store_true", help="Grant admin rights")
    create.set_defaults(func=cmd_create_user)

    sweep = subparsers.add_parser("sweep-sessions", help="Delete all expired sessions")
    sweep.set_defaults(func=cmd_sweep_sessions)

    subparsers.add_parser("serve", help="Run the HTTP server")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "serve":
        from notscared.main import run
        run()
        return 0

    settings = get_settings()
    setup_logger(settings)

    database = Database(args.database_url or settings.database_url)
    try:
        database.init_db()
        return args.func(database, args)
    finally:
        database.dispose()


if __name__ == "__main__":
    sys.exit(main())
