"""Progress persistence.

One document per (user, course), stored as JSON next to an integer
``version`` column. Writes use lightweight transactions so a writer holding
a stale copy fails with ``ConcurrentModificationError`` instead of
overwriting newer progress.

Tables:
- progress_aggregates: Full aggregate document, partitioned by user
- progress_by_course: Summary row per learner, partitioned by course
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID

import orjson
import structlog
from cassandra import DriverException
from cassandra.cluster import NoHostAvailable

from .exceptions import ConcurrentModificationError, PersistenceError
from .models import ProgressAggregate, ensure_utc_aware


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)

_DRIVER_ERRORS = (DriverException, NoHostAvailable)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

PROGRESS_AGGREGATES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.progress_aggregates (
    user_id UUID,
    course_id UUID,
    enrollment_id UUID,
    document TEXT,
    version INT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((user_id), course_id)
) WITH CLUSTERING ORDER BY (course_id ASC)
"""

PROGRESS_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.progress_by_course (
    course_id UUID,
    user_id UUID,
    overall_percent DOUBLE,
    total_time_spent DOUBLE,
    completion_status TEXT,
    updated_at TIMESTAMP,
    PRIMARY KEY ((course_id), user_id)
) WITH CLUSTERING ORDER BY (user_id ASC)
"""

PROGRESS_TABLES_CQL = [
    PROGRESS_AGGREGATES_TABLE_CQL,
    PROGRESS_BY_COURSE_TABLE_CQL,
]


# ==============================================================================
# Serialization
# ==============================================================================


def dump_document(aggregate: ProgressAggregate) -> str:
    return orjson.dumps(aggregate.to_dict()).decode()


def load_document(document: str | bytes, version: int | None = None) -> ProgressAggregate:
    data: dict[str, Any] = orjson.loads(document)
    if version is not None:
        data["version"] = version
    return ProgressAggregate.from_dict(data)


class ProgressSummary:
    """Per-learner row used for course-wide analytics."""

    def __init__(
        self,
        course_id: UUID,
        user_id: UUID,
        overall_percent: float = 0,
        total_time_spent: float = 0,
        completion_status: str = "not_started",
        updated_at: datetime | None = None,
    ):
        self.course_id = course_id
        self.user_id = user_id
        self.overall_percent = overall_percent
        self.total_time_spent = total_time_spent
        self.completion_status = completion_status
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_aggregate(cls, aggregate: ProgressAggregate) -> "ProgressSummary":
        return cls(
            course_id=aggregate.course_id,
            user_id=aggregate.user_id,
            overall_percent=aggregate.statistics.completion.overall,
            total_time_spent=aggregate.statistics.time.total_spent,
            completion_status=aggregate.completion.status,
            updated_at=aggregate.updated_at,
        )

    @classmethod
    def from_row(cls, row: Any) -> "ProgressSummary":
        return cls(
            course_id=row.course_id,
            user_id=row.user_id,
            overall_percent=row.overall_percent or 0,
            total_time_spent=row.total_time_spent or 0,
            completion_status=row.completion_status or "not_started",
            updated_at=row.updated_at,
        )

    @property
    def is_completed(self) -> bool:
        return self.completion_status in ("completed", "certified")


class ProgressRepository(Protocol):
    async def get(self, user_id: UUID, course_id: UUID) -> ProgressAggregate | None: ...

    async def save(self, aggregate: ProgressAggregate) -> ProgressAggregate: ...

    async def list_for_user(self, user_id: UUID) -> list[ProgressAggregate]: ...

    async def list_for_course(self, course_id: UUID) -> list[ProgressSummary]: ...


# ==============================================================================
# Cassandra Repository
# ==============================================================================


class CassandraProgressRepository:
    """Cassandra-backed progress store."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_aggregate = self.session.prepare(f"""
            SELECT document, version FROM {self.keyspace}.progress_aggregates
            WHERE user_id = ? AND course_id = ?
        """)

        self._get_user_aggregates = self.session.prepare(f"""
            SELECT document, version FROM {self.keyspace}.progress_aggregates
            WHERE user_id = ?
        """)

        self._insert_aggregate = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.progress_aggregates
            (user_id, course_id, enrollment_id, document, version, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_aggregate = self.session.prepare(f"""
            UPDATE {self.keyspace}.progress_aggregates
            SET document = ?, version = ?, updated_at = ?
            WHERE user_id = ? AND course_id = ?
            IF version = ?
        """)

        # Summary table (dual-write)
        self._upsert_summary = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.progress_by_course
            (course_id, user_id, overall_percent, total_time_spent,
             completion_status, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """)

        self._get_course_summaries = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.progress_by_course
            WHERE course_id = ?
        """)

    async def get(self, user_id: UUID, course_id: UUID) -> ProgressAggregate | None:
        """Load the aggregate for a user and course, or None."""
        try:
            result = await self.session.aexecute(self._get_aggregate, [user_id, course_id])
        except _DRIVER_ERRORS as e:
            logger.error(
                "progress_load_failed",
                user_id=str(user_id),
                course_id=str(course_id),
                error=str(e),
            )
            raise PersistenceError(f"Failed to load progress: {e}") from e

        row = result.one()
        if not row:
            return None
        return load_document(row.document, row.version)

    async def save(self, aggregate: ProgressAggregate) -> ProgressAggregate:
        """Persist the aggregate if nobody saved it since it was loaded.

        On success ``aggregate.version`` is incremented.

        Raises:
            ConcurrentModificationError: If the stored version moved on
            PersistenceError: If the store is unreachable
        """
        expected_version = aggregate.version
        now = datetime.now(UTC)

        aggregate.version = expected_version + 1
        aggregate.updated_at = now
        document = dump_document(aggregate)

        try:
            if expected_version == 0:
                result = await self.session.aexecute(
                    self._insert_aggregate,
                    [
                        aggregate.user_id,
                        aggregate.course_id,
                        aggregate.enrollment_id,
                        document,
                        aggregate.version,
                        aggregate.created_at,
                        now,
                    ],
                )
            else:
                result = await self.session.aexecute(
                    self._update_aggregate,
                    [
                        document,
                        aggregate.version,
                        now,
                        aggregate.user_id,
                        aggregate.course_id,
                        expected_version,
                    ],
                )
        except _DRIVER_ERRORS as e:
            aggregate.version = expected_version
            logger.error(
                "progress_save_failed",
                user_id=str(aggregate.user_id),
                course_id=str(aggregate.course_id),
                error=str(e),
            )
            raise PersistenceError(f"Failed to save progress: {e}") from e

        if not result.was_applied:
            aggregate.version = expected_version
            logger.warning(
                "progress_version_conflict",
                user_id=str(aggregate.user_id),
                course_id=str(aggregate.course_id),
                expected_version=expected_version,
            )
            raise ConcurrentModificationError()

        summary = ProgressSummary.from_aggregate(aggregate)
        try:
            await self.session.aexecute(
                self._upsert_summary,
                [
                    summary.course_id,
                    summary.user_id,
                    summary.overall_percent,
                    summary.total_time_spent,
                    summary.completion_status,
                    now,
                ],
            )
        except _DRIVER_ERRORS as e:
            # Aggregate is already durable; the summary is rewritten on next save
            logger.warning(
                "progress_summary_write_failed",
                course_id=str(summary.course_id),
                user_id=str(summary.user_id),
                error=str(e),
            )

        return aggregate

    async def list_for_user(self, user_id: UUID) -> list[ProgressAggregate]:
        try:
            result = await self.session.aexecute(self._get_user_aggregates, [user_id])
        except _DRIVER_ERRORS as e:
            raise PersistenceError(f"Failed to list progress: {e}") from e
        return [load_document(row.document, row.version) for row in result]

    async def list_for_course(self, course_id: UUID) -> list[ProgressSummary]:
        try:
            result = await self.session.aexecute(self._get_course_summaries, [course_id])
        except _DRIVER_ERRORS as e:
            raise PersistenceError(f"Failed to list course progress: {e}") from e
        return [ProgressSummary.from_row(row) for row in result]


# ==============================================================================
# In-memory Repository
# ==============================================================================


class InMemoryProgressRepository:
    """Process-local store with the same contract as the Cassandra one.

    Documents are kept serialized so callers never share mutable state.
    """

    def __init__(self):
        self._documents: dict[tuple[UUID, UUID], tuple[str, int]] = {}

    async def get(self, user_id: UUID, course_id: UUID) -> ProgressAggregate | None:
        stored = self._documents.get((user_id, course_id))
        if stored is None:
            return None
        document, version = stored
        return load_document(document, version)

    async def save(self, aggregate: ProgressAggregate) -> ProgressAggregate:
        key = (aggregate.user_id, aggregate.course_id)
        stored = self._documents.get(key)
        stored_version = stored[1] if stored else 0
        if stored_version != aggregate.version:
            raise ConcurrentModificationError()

        aggregate.version += 1
        aggregate.updated_at = datetime.now(UTC)
        self._documents[key] = (dump_document(aggregate), aggregate.version)
        return aggregate

    async def list_for_user(self, user_id: UUID) -> list[ProgressAggregate]:
        return [
            load_document(document, version)
            for (uid, _), (document, version) in self._documents.items()
            if uid == user_id
        ]

    async def list_for_course(self, course_id: UUID) -> list[ProgressSummary]:
        return [
            ProgressSummary.from_aggregate(load_document(document, version))
            for (_, cid), (document, version) in self._documents.items()
            if cid == course_id
        ]
