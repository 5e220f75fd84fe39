from datetime import datetime, timezone
from typing import Any, Iterable, Mapping
from src.domain.models import Bug, BugUrl

class BugRowTranslator:
    """
    Anti-corruption layer that translates rows from the `bugs` and `bug_urls` tables into Bug aggregates.
    """

    @staticmethod
    def _as_utc(value: datetime) -> datetime:
        # SQLite hands back naive datetimes; everything is written in UTC.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @staticmethod
    def url_to_domain(url_row: Mapping[str, Any]) -> BugUrl:
        return BugUrl(id=url_row['id'], url=url_row['url'], bug_id=url_row['bug_id'])

    @classmethod
    def to_domain(cls, bug_row: Mapping[str, Any], url_rows: Iterable[Mapping[str, Any]]) -> Bug:
        """
        Builds a Bug from its row and the rows of the URLs it owns.

        Args:
            bug_row (Mapping[str, Any]): A row mapping from the `bugs` table.
            url_rows (Iterable[Mapping[str, Any]]): Rows from `bug_urls`, already in display order.

        Returns:
            Bug: The materialized aggregate.
        """
        urls = [cls.url_to_domain(row) for row in url_rows]
        stray = [url.id for url in urls if url.bug_id != bug_row['id']]
        if stray:
            raise ValueError(f"URL rows {stray} do not belong to bug {bug_row['id']}.")

        return Bug(
            id=bug_row['id'],
            description=bug_row['description'],
            image_url=bug_row['image_url'],
            status=bug_row['status'],
            comment=bug_row['comment'],
            responsible=bug_row['responsible'],
            urls=urls,
            created_at=cls._as_utc(bug_row['created_at']),
            updated_at=cls._as_utc(bug_row['updated_at']),
        )
