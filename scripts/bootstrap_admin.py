from __future__ import annotations

import argparse
import asyncio
import sys

from modcore.core.config import get_settings
from modcore.core.errors import ModerationError
from modcore.core.logging import configure_logging
from modcore.persistence.db import SessionLocal
from modcore.services.roles import bootstrap_global_admin


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Grant Global Administrator to seed users")
    parser.add_argument(
        "--user-id",
        action="append",
        default=[],
        help="User id to promote (repeatable); defaults to BOOTSTRAP_ADMIN_USER_IDS",
    )
    return parser


async def _bootstrap(user_ids: list[str]) -> int:
    async with SessionLocal() as session:
        for user_id in user_ids:
            grant = await bootstrap_global_admin(session, user_id=user_id)
            print(f"global_admin user_id={user_id} grant_id={grant.id}")
    return 0


def main() -> int:
    configure_logging()
    args = _build_parser().parse_args()
    user_ids = args.user_id or get_settings().bootstrap_admins()
    if not user_ids:
        print("no user ids given; pass --user-id or set BOOTSTRAP_ADMIN_USER_IDS", file=sys.stderr)
        return 2
    try:
        return asyncio.run(_bootstrap(user_ids))
    except ModerationError as exc:
        print(f"bootstrap_failed code={exc.code} message={exc.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
