"""SQLite-backed session store.

Each session is one row holding the JSON dump of the aggregate. Loaded
sessions are kept in an identity map so repeated reads return the same
objects and cancellation hooks on in-flight messages survive a write.
Hooks are never persisted; a session read back from disk by another
process has none.

Database calls are synchronous and short; they run inline on the event
loop.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Sequence

from sqlalchemy import select

from strand.exceptions import SessionExistsError, SessionNotFoundError
from strand.models.session import Session
from strand.storage.engine import create_session_factory, create_strand_engine, init_db
from strand.storage.repositories import SessionStore, apply_patch
from strand.storage.schema import SessionRow

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.orm import Session as DBSession
    from sqlalchemy.orm import sessionmaker

    from strand.protocols import SessionPatch

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SqliteMessageStore(SessionStore):
    """Session store persisting to SQLite through SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker[DBSession], *, engine: Engine | None = None) -> None:
        self._session_factory = session_factory
        self._engine = engine
        self._live: dict[str, Session] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def open(cls, db_path: str = ":memory:") -> SqliteMessageStore:
        """Create the engine, initialize the schema and return a store."""
        engine = create_strand_engine(db_path)
        init_db(engine)
        logger.info("Opened session database at %s", db_path)
        return cls(create_session_factory(engine), engine=engine)

    def _load(self, session_id: str) -> Session | None:
        cached = self._live.get(session_id)
        if cached is not None:
            return cached
        with self._session_factory() as db:
            row = db.get(SessionRow, session_id)
            if row is None:
                return None
            session = Session.model_validate_json(row.document_json)
        self._live[session_id] = session
        return session

    def _write(self, session: Session, *, create: bool) -> None:
        now = _utcnow()
        document = session.model_dump_json()
        with self._session_factory() as db:
            row = db.get(SessionRow, session.id)
            if create:
                if row is not None:
                    raise SessionExistsError(session.id)
                db.add(
                    SessionRow(
                        session_id=session.id,
                        name=session.name,
                        document_json=document,
                        created_at=now,
                        updated_at=now,
                    )
                )
            else:
                if row is None:
                    raise SessionNotFoundError(session.id)
                row.name = session.name
                row.document_json = document
                row.updated_at = now
            db.commit()
        self._live[session.id] = session

    async def get_session(self, session_id: str) -> Session | None:
        return self._load(session_id)

    async def update_session(self, session_id: str, patch: SessionPatch) -> Session:
        async with self._lock:
            current = self._load(session_id)
            if current is None:
                raise SessionNotFoundError(session_id)
            updated = apply_patch(current, patch)
            self._write(updated, create=False)
            logger.debug("Persisted session %s", session_id[:8])
            return updated

    async def create_session(self, session: Session) -> Session:
        async with self._lock:
            self._write(session, create=True)
            return session

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock:
            self._live.pop(session_id, None)
            with self._session_factory() as db:
                row = db.get(SessionRow, session_id)
                if row is None:
                    return False
                db.delete(row)
                db.commit()
            return True

    async def list_sessions(self) -> Sequence[Session]:
        with self._session_factory() as db:
            ids = db.execute(
                select(SessionRow.session_id).order_by(SessionRow.created_at)
            ).scalars().all()
        sessions = [self._load(session_id) for session_id in ids]
        return [s for s in sessions if s is not None]

    async def close(self) -> None:
        self._live.clear()
        if self._engine is not None:
            self._engine.dispose()
