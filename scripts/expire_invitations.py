"""
Mark every overdue PENDING invitation as EXPIRED.

Reads already treat overdue invitations as expired, so this only tidies the
stored status; running it any number of times is harmless.

Usage:
    uv run python -m scripts.expire_invitations
"""
import asyncio

from panodesk.core.database.engine import get_db, init_db
from panodesk.features.invitations.service import expire_stale_invitations
from panodesk.utils import get_logger


log = get_logger(__name__)


async def main():
    await init_db()

    async for db in get_db():
        count = await expire_stale_invitations(db)
        log.info(f"{count} invitation(s) marked as expired")
        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
