"""Refresh signed Linear image links in GitHub issue bodies once.

The server runs the same job on a schedule; this is for operators who want
to run it by hand (for example after lowering the expiry window).

Usage:
  python scripts/refresh_image_links.py --database-url sqlite+aiosqlite:///./data/syncbridge.db
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


async def _run() -> dict:
    from syncbridge.models.base import init_db  # noqa: WPS433
    from syncbridge.services.maintenance import ImageLinkRefresher  # noqa: WPS433
    from syncbridge.services.store import get_store  # noqa: WPS433

    await init_db()
    return await ImageLinkRefresher(get_store()).run()


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--database-url", help="Override DATABASE_URL for this run.")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    # DATABASE_URL must be set before importing syncbridge.* modules
    if args.database_url:
        os.environ["DATABASE_URL"] = args.database_url
    os.environ["LOG_LEVEL"] = args.log_level

    import logging

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    stats = asyncio.run(_run())
    print(json.dumps(stats))
    return 1 if stats["failed"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
