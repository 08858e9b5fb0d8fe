"""
Operational CLI.

  modloot serve                     run the API with uvicorn
  modloot prune-logs [--days N]     delete activity logs past retention (run daily from cron)
  modloot create-admin EMAIL PASS   create or promote an administrator
"""

import argparse
import asyncio
import sys

import structlog
import uvicorn
from sqlalchemy import select

from modloot.config import get_settings
from modloot.core.audit import prune_logs
from modloot.middleware.auth import hash_password
from modloot.models.database import dispose_engine, session_scope
from modloot.models.tables import User

logger = structlog.get_logger()


async def _prune(days: int) -> int | None:
    try:
        return await prune_logs(days)
    finally:
        await dispose_engine()


async def _create_admin(email: str, password: str, name: str | None) -> User:
    email = email.strip().lower()
    try:
        async with session_scope() as session:
            result = await session.execute(select(User).where(User.email == email))
            user = result.scalar_one_or_none()
            if user is None:
                user = User(email=email, name=name, password_hash=hash_password(password))
                session.add(user)
            else:
                user.password_hash = hash_password(password)
            user.is_admin = True
            user.is_active = True
            await session.commit()
            return user
    finally:
        await dispose_engine()


def serve(host: str, port: int, reload: bool) -> None:
    uvicorn.run("modloot.main:app", host=host, port=port, reload=reload)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="modloot")
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="run the API server")
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.add_argument("--reload", action="store_true")

    p_prune = sub.add_parser("prune-logs", help="delete activity logs older than the retention window")
    p_prune.add_argument("--days", type=int, default=None)

    p_admin = sub.add_parser("create-admin", help="create or promote an admin user")
    p_admin.add_argument("email")
    p_admin.add_argument("password")
    p_admin.add_argument("--name", default=None)

    args = parser.parse_args(argv)

    if args.command == "serve":
        serve(args.host, args.port, args.reload)
        return 0

    if args.command == "prune-logs":
        days = args.days or get_settings().log_retention_days
        deleted = asyncio.run(_prune(days))
        if deleted is None:
            print("Pruning activity logs failed, see the log for details", file=sys.stderr)
            return 1
        print(f"Deleted {deleted} activity logs older than {days} days")
        return 0

    if args.command == "create-admin":
        if len(args.password) < 8:
            print("Password must be at least 8 characters", file=sys.stderr)
            return 2
        user = asyncio.run(_create_admin(args.email, args.password, args.name))
        logger.info("admin_provisioned", user_id=str(user.id), email=user.email)
        print(f"Admin ready: {user.email}")
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
