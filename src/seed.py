import asyncio
import sys
import logging

from src.config import load_settings
from src.domain.exceptions import BugTrackerException
from src.domain.models import BugStatus, ResponsibleParty
from src.infrastructure.database import DatabaseGateway
from src.application.bug_service import BugService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

SAMPLE_BUGS = [
    {
        'description': "Navigation menu doesn't work on mobile devices",
        'imageUrl': 'https://placekitten.com/800/600',
        'status': BugStatus.OPEN,
        'comment': 'Reproduced on iPhone 13 with iOS 16',
        'responsible': ResponsibleParty.FRONTEND,
        'urls': [
            {'url': 'https://example.com/dashboard'},
            {'url': 'https://example.com/settings'},
        ],
    },
    {
        'description': 'API returns 500 error when trying to update user profile',
        'imageUrl': 'https://placekitten.com/900/600',
        'status': BugStatus.IN_PROGRESS,
        'comment': 'Seems to be related to database constraints',
        'responsible': ResponsibleParty.BACKEND,
        'urls': [
            {'url': 'https://example.com/api/users/1'},
        ],
    },
]


async def seed(bug_service: BugService, db_gateway: DatabaseGateway) -> list:
    """Wipes the bug tables and inserts SAMPLE_BUGS. Refused in production."""
    await db_gateway.create_schema()
    await db_gateway.clean_database()

    logger.info("Seeding database...")
    created = [await bug_service.create(data) for data in SAMPLE_BUGS]
    logger.info(f"Database seeded with {len(created)} bugs.")
    return created


async def main():
    settings = load_settings()
    db_gateway = DatabaseGateway(db_url=settings.database_url, echo=settings.db_echo, environment=settings.app_env)
    try:
        await db_gateway.connect()
        await seed(BugService(db_gateway), db_gateway)
    finally:
        await db_gateway.disconnect()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except BugTrackerException as e:
        logger.error(f"Seeding failed: {e}")
        sys.exit(1)
