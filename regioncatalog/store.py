"""
Idempotent write path.

Rows are inserted only when their natural key is absent; an existing row is
a normal outcome reported as existed=True, never an error.
"""

import threading
from contextlib import nullcontext
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .context import RunContext
from .database import Institution, Region, get_session_factory
from .errors import StoreError

_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class UpsertStore:
    """Insert-or-ignore writes for regions and institutions."""

    def __init__(self, engine: Engine):
        dialect = engine.dialect.name
        if dialect not in _INSERTS:
            raise ValueError(f"Unsupported database dialect: {dialect}")
        self.engine = engine
        self._insert = _INSERTS[dialect]
        self._sessions = get_session_factory(engine)
        # one shared connection (in-memory SQLite) must not interleave transactions
        self._lock = threading.Lock() if isinstance(engine.pool, StaticPool) else nullcontext()

    def upsert_region(self, name: str, ctx: RunContext) -> Tuple[int, bool]:
        """
        Insert a region unless one with this name exists.

        Insert and follow-up lookup share one transaction.

        Returns:
            (region id, existed)

        Raises:
            StoreError: On any database failure
            DeadlineExceeded: If the run was cancelled
        """
        ctx.check()
        stmt = (
            self._insert(Region.__table__)
            .values(name=name)
            .on_conflict_do_nothing(index_elements=["name"])
            .returning(Region.__table__.c.id)
        )
        try:
            with self._lock, self._sessions.begin() as session:
                region_id = session.execute(stmt).scalar_one_or_none()
                if region_id is not None:
                    return region_id, False
                region_id = session.execute(
                    select(Region.id).where(Region.name == name)
                ).scalar_one()
                return region_id, True
        except SQLAlchemyError as e:
            raise StoreError(f"region '{name}': upsert failed: {e}", {"region": name})

    def upsert_institution(self, region_id: int, name: str, ctx: RunContext) -> bool:
        """
        Insert an institution unless (region_id, name) exists.

        Returns:
            True if the row already existed

        Raises:
            StoreError: On any database failure
            DeadlineExceeded: If the run was cancelled
        """
        ctx.check()
        stmt = (
            self._insert(Institution.__table__)
            .values(region_id=region_id, name=name)
            .on_conflict_do_nothing(index_elements=["region_id", "name"])
        )
        try:
            with self._lock, self._sessions.begin() as session:
                result = session.execute(stmt)
                return result.rowcount == 0
        except SQLAlchemyError as e:
            raise StoreError(
                f"institution '{name}': insert failed: {e}",
                {"region_id": region_id, "institution": name},
            )

    def count_regions(self) -> int:
        with self._lock, self._sessions() as session:
            return session.execute(select(func.count()).select_from(Region)).scalar_one()

    def count_institutions(self) -> int:
        with self._lock, self._sessions() as session:
            return session.execute(select(func.count()).select_from(Institution)).scalar_one()

    def list_regions(self, limit: Optional[int] = None) -> List[Tuple[str, int]]:
        """Return (region name, institution count) pairs ordered by name."""
        stmt = (
            select(Region.name, func.count(Institution.id))
            .outerjoin(Institution, Institution.region_id == Region.id)
            .group_by(Region.id, Region.name)
            .order_by(Region.name)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._lock, self._sessions() as session:
            return [(row[0], row[1]) for row in session.execute(stmt)]
