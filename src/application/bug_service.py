import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Sequence, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from src.domain.exceptions import BugNotFoundException, ValidationException
from src.domain.models import Bug, BugCreate, BugUpdate
from src.infrastructure.acl import BugRowTranslator
from src.infrastructure.database import DatabaseGateway, bug_urls_table, bugs_table

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse(schema: Type[SchemaT], data: Union[SchemaT, Mapping[str, Any]]) -> SchemaT:
    """Validates raw input against `schema`, converting pydantic errors into ValidationException."""
    if isinstance(data, schema):
        return data
    if not isinstance(data, Mapping):
        raise ValidationException("Request body must be a JSON object.")
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        messages = []
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"])
            messages.append(f"{location}: {error['msg']}" if location else error["msg"])
        raise ValidationException(messages) from e


class BugService:
    """
    Create/read/update/delete for Bug aggregates.

    A bug and its URLs are always written in the same transaction, so no reader can
    observe a bug without its URLs, orphaned URLs, or a half-replaced URL list.
    """

    def __init__(self, db_gateway: DatabaseGateway):
        self.db_gateway = db_gateway

    @staticmethod
    def _url_rows(bug_id: str, urls: Sequence[str]) -> List[Dict[str, Any]]:
        return [
            {'id': str(uuid.uuid4()), 'url': url, 'bug_id': bug_id, 'position': position}
            for position, url in enumerate(urls)
        ]

    @staticmethod
    async def _fetch_url_rows(conn: AsyncConnection, bug_ids: Sequence[str]) -> Dict[str, List[Mapping[str, Any]]]:
        grouped: Dict[str, List[Mapping[str, Any]]] = defaultdict(list)
        if not bug_ids:
            return grouped

        stmt = (
            select(bug_urls_table)
            .where(bug_urls_table.c.bug_id.in_(bug_ids))
            .order_by(bug_urls_table.c.bug_id, bug_urls_table.c.position, bug_urls_table.c.id)
        )
        result = await conn.execute(stmt)
        for row in result.mappings():
            grouped[row['bug_id']].append(row)
        return grouped

    async def _load_one(self, conn: AsyncConnection, bug_id: str) -> Bug:
        result = await conn.execute(select(bugs_table).where(bugs_table.c.id == bug_id))
        bug_row = result.mappings().first()
        if bug_row is None:
            raise BugNotFoundException(bug_id)

        url_rows = await self._fetch_url_rows(conn, [bug_id])
        return BugRowTranslator.to_domain(bug_row, url_rows[bug_id])

    async def create(self, data: Union[BugCreate, Mapping[str, Any]]) -> Bug:
        """
        Inserts a bug and all of its URLs atomically.

        Raises:
            ValidationException: If the input is invalid. Nothing is written.
        """
        payload = _parse(BugCreate, data)
        bug_id = str(uuid.uuid4())
        timestamp = now_utc()

        bug_values = payload.model_dump(exclude={'urls'})
        bug_values.update(id=bug_id, created_at=timestamp, updated_at=timestamp)
        url_rows = self._url_rows(bug_id, [item.url for item in payload.urls])

        async def _create(conn: AsyncConnection) -> Bug:
            await conn.execute(insert(bugs_table).values(**bug_values))
            if url_rows:
                await conn.execute(insert(bug_urls_table), url_rows)
            return await self._load_one(conn, bug_id)

        bug = await self.db_gateway.run_in_transaction(_create)
        logger.info(f"Created bug {bug.id} with {len(bug.urls)} URL(s).")
        return bug

    async def find_all(self) -> List[Bug]:
        """Returns every bug with its URLs, most recently created first."""
        async def _find_all(conn: AsyncConnection) -> List[Bug]:
            stmt = select(bugs_table).order_by(bugs_table.c.created_at.desc(), bugs_table.c.id)
            bug_rows = (await conn.execute(stmt)).mappings().all()
            url_rows = await self._fetch_url_rows(conn, [row['id'] for row in bug_rows])
            return [BugRowTranslator.to_domain(row, url_rows[row['id']]) for row in bug_rows]

        return await self.db_gateway.run_in_transaction(_find_all)

    async def find_one(self, bug_id: str) -> Bug:
        """
        Raises:
            BugNotFoundException: If no bug has this ID.
        """
        async def _find_one(conn: AsyncConnection) -> Bug:
            return await self._load_one(conn, bug_id)

        try:
            return await self.db_gateway.run_in_transaction(_find_one)
        except BugNotFoundException:
            logger.warning(f"Bug {bug_id} not found.")
            raise

    async def update(self, bug_id: str, patch: Union[BugUpdate, Mapping[str, Any]]) -> Bug:
        """
        Applies a partial update and, when a non-empty URL list is supplied, replaces all URLs.

        The scalar update, URL deletion, URL re-insertion and re-read run in one transaction.
        Updating the bug row first takes its row lock, so concurrent updates of the same bug serialize.

        Raises:
            ValidationException: If the patch is invalid. Checked before anything else.
            BugNotFoundException: If no bug has this ID. Nothing is written.
        """
        changes = _parse(BugUpdate, patch)
        await self.find_one(bug_id)

        values = changes.scalar_changes()
        values['updated_at'] = now_utc()
        new_urls = changes.replacement_urls()

        async def _update(conn: AsyncConnection) -> Bug:
            result = await conn.execute(update(bugs_table).where(bugs_table.c.id == bug_id).values(**values))
            if result.rowcount == 0:
                # Deleted between the existence check and this transaction
                raise BugNotFoundException(bug_id)

            # An empty list is treated like no list: existing URLs stay.
            if new_urls:
                await conn.execute(delete(bug_urls_table).where(bug_urls_table.c.bug_id == bug_id))
                await conn.execute(insert(bug_urls_table), self._url_rows(bug_id, new_urls))

            return await self._load_one(conn, bug_id)

        bug = await self.db_gateway.run_in_transaction(_update)
        if new_urls:
            logger.info(f"Updated bug {bug_id}; replaced URLs with {len(new_urls)} new URL(s).")
        else:
            logger.info(f"Updated bug {bug_id}.")
        return bug

    async def remove(self, bug_id: str) -> None:
        """
        Deletes a bug. Its URLs go with it through the ON DELETE CASCADE foreign key.

        Raises:
            BugNotFoundException: If no bug has this ID.
        """
        await self.find_one(bug_id)

        async def _remove(conn: AsyncConnection) -> None:
            result = await conn.execute(delete(bugs_table).where(bugs_table.c.id == bug_id))
            if result.rowcount == 0:
                raise BugNotFoundException(bug_id)

        await self.db_gateway.run_in_transaction(_remove)
        logger.info(f"Deleted bug {bug_id}.")
