import unittest

from src.application.bug_service import BugService
from src.domain.exceptions import DatabaseException
from src.infrastructure.database import DatabaseGateway
from src.seed import SAMPLE_BUGS, seed


class TestSeed(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.gateway = DatabaseGateway("sqlite+aiosqlite:///:memory:", environment="development")
        await self.gateway.connect()
        self.service = BugService(self.gateway)

    async def asyncTearDown(self) -> None:
        await self.gateway.disconnect()

    async def test_seed_replaces_existing_rows(self) -> None:
        await seed(self.service, self.gateway)
        await seed(self.service, self.gateway)

        bugs = await self.service.find_all()

        self.assertEqual(len(bugs), len(SAMPLE_BUGS))
        self.assertEqual(sum(len(b.urls) for b in bugs), 3)

    async def test_seed_refused_in_production(self) -> None:
        self.gateway.environment = "production"

        with self.assertRaises(DatabaseException):
            await seed(self.service, self.gateway)
