"""
Seed script to populate the default permission catalog and roles.

The application also runs this step at startup (SEED_ON_STARTUP=1). Use
the script to seed a database without starting the server.

Usage:
    uv run python -m scripts.seed_permissions
    ADMIN_EMAIL=admin@example.com uv run python -m scripts.seed_permissions
"""
import asyncio

from app.core import config
from app.core.database.engine import AsyncSessionLocal, init_db
from app.features.permissions.catalog import DEFAULT_ROLES, seed_catalog
from app.features.permissions.services import grant_global_admin
from app.utils import get_logger


log = get_logger(__name__)


async def main():
    """Create tables, then seed permissions and roles."""
    log.info("Initializing database tables...")
    await init_db()

    async with AsyncSessionLocal() as db:
        try:
            await seed_catalog(db)
            if config.ADMIN_EMAIL:
                await grant_global_admin(db, config.ADMIN_EMAIL)
        except Exception as e:
            log.error(f"Error seeding permissions: {e}", exc_info=True)
            await db.rollback()
            raise

    log.info("Permission seeding completed successfully!")
    for role_name, role_config in DEFAULT_ROLES.items():
        log.info(f"  - {role_name}: {role_config['description']}")


if __name__ == "__main__":
    asyncio.run(main())
