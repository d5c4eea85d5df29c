"""SQLite-backed bake progress store.

Records which ``(region, ami_type)`` pairs already have a baked image so a
retried run only bakes the regions still pending. Rows are created as
pending by the planning phase (``seed_pending``); the bake step only ever
flips them to done with a single UPDATE.

Every operation checks a fresh connection out of a ``NullPool`` engine
inside ``engine.begin()``, so it is released on every exit path and no
handle outlives the call. Row-level atomicity of the single statement is
left to sqlite.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Iterable

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from ..models import ProgressRecord
from ..provisioning.errors import PersistenceError

if TYPE_CHECKING:
    from ..settings import BakerySettings

logger = logging.getLogger(__name__)

TABLE = "bake_ami"

_CREATE_TABLE = text(
    """
    CREATE TABLE IF NOT EXISTS bake_ami (
        region TEXT NOT NULL,
        ami_type TEXT NOT NULL,
        ami_status INTEGER NOT NULL DEFAULT 0,
        ami_id TEXT,
        PRIMARY KEY (region, ami_type)
    )
    """
)

_MARK_DONE = text(
    "UPDATE bake_ami SET ami_status = 1, ami_id = :ami_id "
    "WHERE region = :region AND ami_type = :ami_type"
)

_SEED_PENDING = text(
    "INSERT OR IGNORE INTO bake_ami (region, ami_type, ami_status) "
    "VALUES (:region, :ami_type, 0)"
)

_SELECT_RECORD = text(
    "SELECT region, ami_type, ami_status, ami_id FROM bake_ami "
    "WHERE region = :region AND ami_type = :ami_type"
)

_SELECT_PENDING = text(
    "SELECT region FROM bake_ami "
    "WHERE ami_type = :ami_type AND ami_status = 0 ORDER BY region"
)


def sqlite_url(db_path: str) -> str:
    return f"sqlite:///{db_path}"


class SqlProgressStore:
    """Progress store over a file-backed sqlite database.

    Satisfies the ``ProgressStore`` protocol from ``protocols.py``.
    """

    def __init__(self, db_path: str, *, busy_timeout_seconds: float = 30.0) -> None:
        self._db_path = db_path
        self._engine: Engine = create_engine(
            sqlite_url(db_path),
            future=True,
            poolclass=NullPool,
            connect_args={"timeout": busy_timeout_seconds},
        )

    @classmethod
    def from_settings(cls, settings: BakerySettings) -> SqlProgressStore:
        return cls(settings.db_path)

    @property
    def db_path(self) -> str:
        return self._db_path

    # ── Bake step ──────────────────────────────────────────────────

    async def mark_done(self, kind: str, region: str, image_id: str) -> int:
        """Flip the ``(region, kind)`` row to done and store the image id.

        Returns the number of rows affected (0 when no pending row was
        planned for this pair). Raises PersistenceError on database errors.
        """
        return await asyncio.to_thread(self._mark_done, kind, region, image_id)

    def _mark_done(self, kind: str, region: str, image_id: str) -> int:
        params = {"ami_id": image_id, "region": region, "ami_type": kind}
        try:
            with self._engine.begin() as conn:
                result = conn.execute(_MARK_DONE, params)
                affected = result.rowcount
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"failed to mark {region}/{kind} done in {self._db_path}: {exc}"
            ) from exc

        logger.info(
            "Progress record updated: region=%s ami_type=%s rows=%d",
            region,
            kind,
            affected,
            extra={"region": region, "ami_type": kind, "image_id": image_id},
        )
        return affected

    # ── Planning / operators ──────────────────────────────────────

    async def create_schema(self) -> None:
        await asyncio.to_thread(self._execute, _CREATE_TABLE, None)

    async def seed_pending(self, regions: Iterable[str], kinds: Iterable[str]) -> None:
        """Insert a pending row for every missing ``(region, kind)`` pair.

        Existing rows, done or pending, are left untouched.
        """
        rows = [
            {"region": region, "ami_type": kind}
            for region in regions
            for kind in kinds
        ]
        if rows:
            await asyncio.to_thread(self._execute, _SEED_PENDING, rows)

    async def get_record(self, region: str, kind: str) -> ProgressRecord | None:
        return await asyncio.to_thread(self._get_record, region, kind)

    async def pending_regions(self, kind: str) -> list[str]:
        """Regions whose ``kind`` image still has to be baked."""
        return await asyncio.to_thread(self._pending_regions, kind)

    def _execute(self, statement, params) -> None:
        try:
            with self._engine.begin() as conn:
                conn.execute(statement, params)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{self._db_path}: {exc}") from exc

    def _get_record(self, region: str, kind: str) -> ProgressRecord | None:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    _SELECT_RECORD, {"region": region, "ami_type": kind}
                ).one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{self._db_path}: {exc}") from exc
        if row is None:
            return None
        return ProgressRecord(
            region=row.region,
            kind=row.ami_type,
            done=bool(row.ami_status),
            image_id=row.ami_id,
        )

    def _pending_regions(self, kind: str) -> list[str]:
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(_SELECT_PENDING, {"ami_type": kind}).all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{self._db_path}: {exc}") from exc
        return [row.region for row in rows]
