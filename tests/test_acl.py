import unittest
from datetime import datetime, timezone

from src.domain.models import BugStatus, ResponsibleParty
from src.infrastructure.acl import BugRowTranslator


def _bug_row(**overrides) -> dict:
    row = {
        "id": "bug-1",
        "description": "Nav broken",
        "image_url": None,
        "status": BugStatus.OPEN,
        "comment": None,
        "responsible": ResponsibleParty.FRONTEND,
        "created_at": datetime(2024, 1, 2, 3, 4, 5),
        "updated_at": datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


class TestBugRowTranslator(unittest.TestCase):
    def test_to_domain_attaches_urls_in_order(self) -> None:
        url_rows = [
            {"id": "u2", "url": "https://e.com/b", "bug_id": "bug-1", "position": 0},
            {"id": "u1", "url": "https://e.com/a", "bug_id": "bug-1", "position": 1},
        ]

        bug = BugRowTranslator.to_domain(_bug_row(), url_rows)

        self.assertEqual([u.id for u in bug.urls], ["u2", "u1"])
        self.assertEqual(bug.urls[0].bug_id, "bug-1")
        self.assertEqual(bug.status, BugStatus.OPEN)

    def test_naive_timestamps_are_read_as_utc(self) -> None:
        bug = BugRowTranslator.to_domain(_bug_row(), [])

        self.assertEqual(bug.created_at, datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
        self.assertEqual(bug.created_at, bug.updated_at)

    def test_url_of_another_bug_raises(self) -> None:
        url_rows = [{"id": "u1", "url": "https://e.com/a", "bug_id": "bug-2"}]

        with self.assertRaises(ValueError):
            BugRowTranslator.to_domain(_bug_row(), url_rows)
