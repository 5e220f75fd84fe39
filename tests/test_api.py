from aiohttp.test_utils import AioHTTPTestCase

from src.api.routes import create_app
from src.application.bug_service import BugService
from src.domain.exceptions import TransactionException
from src.infrastructure.database import DatabaseGateway

SQLITE_URL = "sqlite+aiosqlite:///:memory:"

NAV_BUG = {
    "description": "Nav broken",
    "urls": [{"url": "https://e.com/a"}],
    "status": "Open",
    "responsible": "Frontend",
}


class TestBugRoutes(AioHTTPTestCase):
    async def get_application(self):
        self.gateway = DatabaseGateway(SQLITE_URL, environment="test")
        await self.gateway.connect()
        await self.gateway.create_schema()

        app = create_app(BugService(self.gateway), api_prefix="api", cors_origin="http://localhost:3000")
        app.on_cleanup.append(self._disconnect)
        return app

    async def _disconnect(self, app) -> None:
        await self.gateway.disconnect()

    async def _create(self, body=None) -> dict:
        resp = await self.client.post("/api/bugs", json=body or NAV_BUG)
        self.assertEqual(resp.status, 201, await resp.text())
        return await resp.json()

    async def test_create_returns_201_with_bug(self) -> None:
        bug = await self._create()

        self.assertTrue(bug["id"])
        self.assertEqual(len(bug["urls"]), 1)
        self.assertEqual(bug["urls"][0]["url"], "https://e.com/a")
        self.assertEqual(bug["urls"][0]["bugId"], bug["id"])
        self.assertEqual(bug["status"], "Open")
        self.assertEqual(bug["responsible"], "Frontend")
        self.assertIsNone(bug["imageUrl"])
        self.assertEqual(bug["createdAt"], bug["updatedAt"])
        self.assertTrue(bug["createdAt"].endswith("Z"))

    async def test_create_with_invalid_status_returns_400_and_persists_nothing(self) -> None:
        resp = await self.client.post("/api/bugs", json=dict(NAV_BUG, status="InvalidStatus"))

        self.assertEqual(resp.status, 400)
        body = await resp.json()
        self.assertEqual(body["statusCode"], 400)
        self.assertEqual(body["error"], "Bad Request")
        self.assertIsInstance(body["message"], list)

        listing = await self.client.get("/api/bugs")
        self.assertEqual(await listing.json(), [])

    async def test_malformed_json_returns_400(self) -> None:
        resp = await self.client.post("/api/bugs", data="{not json", headers={"Content-Type": "application/json"})

        self.assertEqual(resp.status, 400)

    async def test_body_that_is_not_utf8_returns_400(self) -> None:
        bug = await self._create()
        headers = {"Content-Type": "application/json"}

        created = await self.client.post("/api/bugs", data=b'\xc3\x28', headers=headers)
        patched = await self.client.patch(f"/api/bugs/{bug['id']}", data=b'\xc3\x28', headers=headers)

        for resp in (created, patched):
            self.assertEqual(resp.status, 400)
            self.assertEqual((await resp.json())["statusCode"], 400)

    async def test_non_object_body_returns_400(self) -> None:
        resp = await self.client.post("/api/bugs", json=[NAV_BUG])

        self.assertEqual(resp.status, 400)

    async def test_list_returns_newest_first(self) -> None:
        first = await self._create(dict(NAV_BUG, description="first"))
        second = await self._create(dict(NAV_BUG, description="second"))

        resp = await self.client.get("/api/bugs")

        self.assertEqual(resp.status, 200)
        self.assertEqual([b["id"] for b in await resp.json()], [second["id"], first["id"]])

    async def test_get_one(self) -> None:
        bug = await self._create()

        resp = await self.client.get(f"/api/bugs/{bug['id']}")

        self.assertEqual(resp.status, 200)
        self.assertEqual(await resp.json(), bug)

    async def test_get_unknown_returns_404(self) -> None:
        resp = await self.client.get("/api/bugs/unknown-id")

        self.assertEqual(resp.status, 404)
        body = await resp.json()
        self.assertEqual(body["statusCode"], 404)
        self.assertIn("unknown-id", body["message"])

    async def test_patch_replaces_urls(self) -> None:
        bug = await self._create()

        resp = await self.client.patch(
            f"/api/bugs/{bug['id']}",
            json={"urls": [{"url": "https://e.com/b"}, {"url": "https://e.com/c"}]},
        )

        self.assertEqual(resp.status, 200)
        updated = await resp.json()
        self.assertEqual(len(updated["urls"]), 2)
        self.assertNotIn(bug["urls"][0]["id"], {u["id"] for u in updated["urls"]})
        self.assertEqual(updated["createdAt"], bug["createdAt"])

    async def test_patch_scalar_fields_keeps_urls(self) -> None:
        bug = await self._create()

        resp = await self.client.patch(f"/api/bugs/{bug['id']}", json={"status": "Fixed", "urls": []})

        self.assertEqual(resp.status, 200)
        updated = await resp.json()
        self.assertEqual(updated["status"], "Fixed")
        self.assertEqual(updated["urls"], bug["urls"])

    async def test_patch_unknown_returns_404_and_invalid_returns_400(self) -> None:
        bug = await self._create()

        missing = await self.client.patch("/api/bugs/unknown-id", json={"comment": "x"})
        invalid = await self.client.patch(f"/api/bugs/{bug['id']}", json={"responsible": "Nobody"})

        self.assertEqual(missing.status, 404)
        self.assertEqual(invalid.status, 400)

    async def test_delete_then_get_returns_404(self) -> None:
        bug = await self._create()

        resp = await self.client.delete(f"/api/bugs/{bug['id']}")
        self.assertEqual(resp.status, 204)

        again = await self.client.get(f"/api/bugs/{bug['id']}")
        self.assertEqual(again.status, 404)
        second_delete = await self.client.delete(f"/api/bugs/{bug['id']}")
        self.assertEqual(second_delete.status, 404)

    async def test_cors_headers(self) -> None:
        resp = await self.client.get("/api/bugs")
        self.assertEqual(resp.headers["Access-Control-Allow-Origin"], "http://localhost:3000")

        preflight = await self.client.options(
            "/api/bugs",
            headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
        )
        self.assertEqual(preflight.status, 204)
        self.assertIn("PATCH", preflight.headers["Access-Control-Allow-Methods"])

    async def test_security_headers(self) -> None:
        ok = await self.client.get("/api/bugs")
        missing = await self.client.get("/api/bugs/unknown-id")

        for resp in (ok, missing):
            self.assertEqual(resp.headers["X-Content-Type-Options"], "nosniff")
            self.assertEqual(resp.headers["X-Frame-Options"], "SAMEORIGIN")


class _FailingBugService:
    async def find_all(self):
        raise TransactionException("connection reset")

    async def find_one(self, bug_id):
        raise RuntimeError(f"unexpected state for {bug_id}")


class TestStoreFailures(AioHTTPTestCase):
    async def get_application(self):
        return create_app(_FailingBugService(), api_prefix="")

    async def test_store_failure_returns_500_without_details(self) -> None:
        resp = await self.client.get("/bugs")

        self.assertEqual(resp.status, 500)
        body = await resp.json()
        self.assertEqual(body["message"], "Internal server error")
        self.assertNotIn("connection reset", await resp.text())

    async def test_unexpected_error_returns_json_500(self) -> None:
        resp = await self.client.get("/bugs/some-id")

        self.assertEqual(resp.status, 500)
        body = await resp.json()
        self.assertEqual(body["statusCode"], 500)
        self.assertEqual(body["message"], "Internal server error")
        self.assertNotIn("unexpected state", await resp.text())
