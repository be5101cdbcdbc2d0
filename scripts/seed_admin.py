"""
Seed script to create the first super admin account.

Reads ADMIN_EMAIL and ADMIN_PASSWORD from the environment (or .env) and
creates a verified SUPER_ADMIN with that email, unless one already exists.

Usage:
    uv run python -m scripts.seed_admin
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from panodesk.core import config
from panodesk.core.database.engine import get_db, init_db
from panodesk.features.users.auth import hash_password
from panodesk.features.users.models import Role, User
from panodesk.utils import get_logger


log = get_logger(__name__)


async def seed_admin(db: AsyncSession, email: str, password: str) -> User:
    """
    Create the super admin, or return the existing account for ``email``.
    """
    email = email.strip().lower()
    existing = await db.scalar(select(User).where(User.email == email))

    if existing:
        log.info(f"User '{email}' already exists ({existing.role.value}), skipping")
        return existing

    admin = User(
        email=email,
        first_name="Super",
        last_name="Admin",
        password_hash=hash_password(password),
        role=Role.SUPER_ADMIN,
        email_verified=True,
    )
    db.add(admin)
    await db.commit()
    await db.refresh(admin)

    log.info(f"Created super admin '{email}' ({admin.id})")
    return admin


async def main():
    """Main function to seed the admin account."""
    if not config.ADMIN_EMAIL or not config.ADMIN_PASSWORD:
        log.error("ADMIN_EMAIL and ADMIN_PASSWORD must be set")
        raise SystemExit(1)
    if len(config.ADMIN_PASSWORD) < config.PASSWORD_MIN_LENGTH:
        log.error(f"ADMIN_PASSWORD must be at least {config.PASSWORD_MIN_LENGTH} characters")
        raise SystemExit(1)

    log.info("Initializing database tables...")
    await init_db()

    async for db in get_db():
        try:
            await seed_admin(db, config.ADMIN_EMAIL, config.ADMIN_PASSWORD)
        except Exception as e:
            log.error(f"Error seeding admin: {e}", exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
