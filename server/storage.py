"""
Durable snapshot store backed by SQLAlchemy async.

One row per room: the latest serialized snapshot plus a version counter
that increases on every save. The default URL points at a local SQLite
file through aiosqlite; Postgres works through asyncpg.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Float, Integer, String, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from tycoon.exceptions import NotFoundError, StorageError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class SavedGame(Base):
    """Latest snapshot of one room."""

    __tablename__ = "saved_games"

    room_code: Mapped[str] = mapped_column(String(16), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    document: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    saved_at: Mapped[float] = mapped_column(Float, nullable=False)


class SnapshotStore:
    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    async def init(self) -> None:
        """Create the engine and the table. Call once at startup."""
        logger.info("[STORE] Connecting to %s", self.database_url.split("@")[-1])
        try:
            self._engine = create_async_engine(self.database_url, echo=self.echo)
            self._session_factory = async_sessionmaker(bind=self._engine, expire_on_commit=False)
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as exc:
            raise StorageError("could not initialise snapshot store", cause=exc) from exc
        logger.info("[STORE] Snapshot store ready")

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("[STORE] Snapshot store closed")

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            raise StorageError("snapshot store not initialised; call init() first")
        return self._session_factory

    async def save(self, room_code: str, document: Dict[str, Any]) -> int:
        """Upsert the snapshot for ``room_code``; returns the new version."""
        code = room_code.upper()
        try:
            async with self._sessions()() as session:
                async with session.begin():
                    row = await session.get(SavedGame, code)
                    if row is None:
                        row = SavedGame(room_code=code, version=1, document=document, saved_at=time.time())
                        session.add(row)
                    else:
                        row.version += 1
                        row.document = document
                        row.saved_at = time.time()
                    version = row.version
        except SQLAlchemyError as exc:
            logger.error("[STORE] Save failed for room %s: %s", code, exc)
            raise StorageError(f"could not save room {code}", cause=exc) from exc
        logger.info("[STORE] Saved room %s (version %d)", code, version)
        return version

    async def load(self, room_code: str) -> Dict[str, Any]:
        code = room_code.upper()
        try:
            async with self._sessions()() as session:
                row = await session.get(SavedGame, code)
        except SQLAlchemyError as exc:
            raise StorageError(f"could not load room {code}", cause=exc) from exc
        if row is None:
            raise NotFoundError(f"no saved game for room {code}")
        return row.document

    async def delete(self, room_code: str) -> bool:
        code = room_code.upper()
        try:
            async with self._sessions()() as session:
                async with session.begin():
                    result = await session.execute(delete(SavedGame).where(SavedGame.room_code == code))
        except SQLAlchemyError as exc:
            raise StorageError(f"could not delete room {code}", cause=exc) from exc
        return bool(result.rowcount)

    async def list_rooms(self) -> List[Dict[str, Any]]:
        """Saved rooms, most recent first."""
        stmt = select(SavedGame.room_code, SavedGame.version, SavedGame.saved_at).order_by(SavedGame.saved_at.desc())
        try:
            async with self._sessions()() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as exc:
            raise StorageError("could not list saved rooms", cause=exc) from exc
        return [{"room_code": code, "version": version, "saved_at": saved_at} for code, version, saved_at in rows]
