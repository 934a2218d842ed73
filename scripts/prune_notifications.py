from __future__ import annotations

import argparse
import asyncio

from fundnotify.persistence.db import SessionLocal
from fundnotify.services.notifications.retention import run_retention_cycle


async def prune(days_old: int | None) -> None:
    async with SessionLocal() as session:
        report = await run_retention_cycle(session=session, days_old=days_old)
        print(f"pruned_old_read={report.old_read_deleted} pruned_expired={report.expired_deleted}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Delete expired and long-read notifications.")
    parser.add_argument("--days-old", type=int, default=None, help="Read-notification age cutoff in days.")
    args = parser.parse_args()
    asyncio.run(prune(args.days_old))


if __name__ == "__main__":
    main()
