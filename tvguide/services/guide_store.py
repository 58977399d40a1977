"""
Guide storage

Owns the channel and programme tables: windowed transactional saves and the
read queries used by the API (channel list, now/next, day schedule, search, stats).
"""
import asyncio
import logging
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import cast

from sqlalchemy import delete, func, or_, select, text
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from tvguide.database import create_session_factory
from tvguide.models import Base, Channel, Programme
from tvguide.services.fetch_types import (
    ChannelPayload,
    ProgrammePayload,
    RetentionWindow,
    SaveResult,
)
from tvguide.utils.timezone import local_day_bounds


logger = logging.getLogger(__name__)

SEARCH_RESULT_LIMIT = 200

CHANNEL_UPSERT = text(
    """
    INSERT INTO channels (id, name, icon)
    VALUES (:id, :name, :icon)
    ON CONFLICT(id) DO UPDATE SET
        name = excluded.name,
        icon = excluded.icon
    """
)

PROGRAMME_INSERT_OR_IGNORE = text(
    """
    INSERT OR IGNORE INTO programmes ("channelId", start, stop, title, "desc")
    VALUES (:channel_id, :start, :stop, :title, :desc)
    """
)


@dataclass(slots=True)
class NowNext:
    """Currently airing and following programme for one channel"""
    channel: Channel
    now: Programme | None
    next: Programme | None


@dataclass(slots=True)
class GuideStats:
    channel_count: int
    programme_count: int


def _timestamp(now: datetime | None) -> int:
    return int(now.timestamp()) if now is not None else int(time.time())


class GuideStore:
    """
    SQLite-backed store for channels and programmes.

    Writers are serialized by an in-process lock plus BEGIN IMMEDIATE; with WAL
    journaling readers see the state before or after a save, never in between.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        retention_past: timedelta = timedelta(hours=12),
        retention_future: timedelta = timedelta(days=7),
        chunk_size: int = 1000,
    ) -> None:
        self._engine = engine
        self._session_factory = create_session_factory(engine)
        self._write_lock = asyncio.Lock()
        self.retention_past = retention_past
        self.retention_future = retention_future
        self.chunk_size = chunk_size

    async def migrate(self) -> None:
        """Create tables and indexes that do not exist yet"""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Guide schema ready")

    async def close(self) -> None:
        """Close database connections on shutdown"""
        await self._engine.dispose()
        logger.info("Database connections closed")

    def retention_window(self, now: datetime | None = None) -> RetentionWindow:
        now_ts = _timestamp(now)
        return RetentionWindow(
            start=now_ts - int(self.retention_past.total_seconds()),
            end=now_ts + int(self.retention_future.total_seconds()),
        )

    async def save(
        self,
        channels: Sequence[ChannelPayload],
        programmes: Sequence[ProgrammePayload],
        *,
        now: datetime | None = None,
    ) -> SaveResult:
        """
        Upsert channels, prune out-of-window programmes and insert new ones atomically.

        Args:
            channels: Parsed channels; the last occurrence of an id wins
            programmes: Parsed programmes; duplicates of a stored (channel, start) are ignored
            now: Reference time for the retention window (defaults to current time)

        Returns:
            SaveResult with counts and the window applied
        """
        window = self.retention_window(now)
        result = SaveResult(window=window)

        logger.info(
            "Saving %s channels and %s programmes (window %s -> %s)",
            len(channels),
            len(programmes),
            window.start,
            window.end,
        )

        async with self._write_lock:
            async with self._session_factory() as session:
                try:
                    connection = await session.connection()
                    await connection.exec_driver_sql("BEGIN IMMEDIATE")

                    result.channels_upserted = await self._upsert_channels(session, channels)
                    result.programmes_deleted = await self._prune_programmes(session, window)
                    result.programmes_inserted = await self._insert_programmes(
                        session, programmes, window
                    )
                except Exception:
                    await session.rollback()
                    raise
                else:
                    await session.commit()

        result.programmes_skipped = len(programmes) - result.programmes_inserted
        logger.info(
            "Save committed: %s channels upserted, %s programmes deleted, %s inserted, %s skipped",
            result.channels_upserted,
            result.programmes_deleted,
            result.programmes_inserted,
            result.programmes_skipped,
        )
        return result

    async def _upsert_channels(
        self, session: AsyncSession, channels: Sequence[ChannelPayload]
    ) -> int:
        # Deduplicate by id while preserving last occurrence
        deduped: dict[str, ChannelPayload] = {channel.id: channel for channel in channels}
        if not deduped:
            logger.debug("No channels to store")
            return 0

        payload = [
            {"id": channel.id, "name": channel.name, "icon": channel.icon}
            for channel in deduped.values()
        ]
        for start_index in range(0, len(payload), self.chunk_size):
            await session.execute(CHANNEL_UPSERT, payload[start_index:start_index + self.chunk_size])

        return len(payload)

    async def _prune_programmes(self, session: AsyncSession, window: RetentionWindow) -> int:
        stmt = (
            delete(Programme)
            .where(or_(Programme.stop < window.start, Programme.start > window.end))
            .execution_options(synchronize_session=False)
        )
        deleted = cast(CursorResult, await session.execute(stmt)).rowcount or 0
        logger.info("Pruned %s programmes outside the retention window", deleted)
        return deleted

    async def _insert_programmes(
        self,
        session: AsyncSession,
        programmes: Sequence[ProgrammePayload],
        window: RetentionWindow,
    ) -> int:
        known_channels = set((await session.execute(select(Channel.id))).scalars().all())

        payload: list[dict[str, object]] = []
        out_of_window = invalid_range = orphaned = 0
        for programme in programmes:
            if programme.stop <= programme.start:
                invalid_range += 1
                continue
            if not window.admits(programme):
                out_of_window += 1
                continue
            if programme.channel_id not in known_channels:
                orphaned += 1
                continue
            payload.append(
                {
                    "channel_id": programme.channel_id,
                    "start": programme.start,
                    "stop": programme.stop,
                    "title": programme.title,
                    "desc": programme.desc,
                }
            )

        if invalid_range or out_of_window:
            logger.debug(
                "Dropped %s programmes with stop <= start and %s outside the window",
                invalid_range,
                out_of_window,
            )
        if orphaned:
            logger.warning("Dropped %s programmes referencing unknown channels", orphaned)

        inserted = 0
        for start_index in range(0, len(payload), self.chunk_size):
            chunk = payload[start_index:start_index + self.chunk_size]
            cursor_result = cast(CursorResult, await session.execute(PROGRAMME_INSERT_OR_IGNORE, chunk))
            rowcount = cursor_result.rowcount
            inserted += len(chunk) if rowcount is None or rowcount < 0 else rowcount

        return inserted

    @asynccontextmanager
    async def _read_session(self) -> AsyncIterator[AsyncSession]:
        """
        Session whose queries share one read snapshot

        Loaded rows are detached before the snapshot is released, so callers
        keep readable objects after the session closes.
        """
        async with self._session_factory() as session:
            connection = await session.connection()
            await connection.exec_driver_sql("BEGIN")
            try:
                yield session
            finally:
                # rollback expires attached instances
                session.expunge_all()
                await session.rollback()

    async def fetch_channels(self) -> list[Channel]:
        """All channels ordered by name"""
        async with self._read_session() as session:
            result = await session.execute(select(Channel).order_by(Channel.name))
            return list(result.scalars().all())

    async def fetch_now_next(self, now: datetime | None = None) -> list[NowNext]:
        """
        Current and next programme for every channel, channels ordered by name.

        Per channel, only the two earliest programmes still running or upcoming are
        read; the first counts as current only once it has started.
        """
        now_ts = _timestamp(now)
        items: list[NowNext] = []

        async with self._read_session() as session:
            channels = (await session.execute(select(Channel).order_by(Channel.name))).scalars().all()

            for channel in channels:
                stmt = (
                    select(Programme)
                    .where(Programme.channel_id == channel.id, Programme.stop > now_ts)
                    .order_by(Programme.start)
                    .limit(2)
                )
                upcoming = list((await session.execute(stmt)).scalars().all())

                current = upcoming[0] if upcoming and upcoming[0].start <= now_ts else None
                following = next((p for p in upcoming if p.start > now_ts), None)
                items.append(NowNext(channel=channel, now=current, next=following))

        return items

    async def fetch_programmes(self, channel_id: str, day: date | datetime) -> list[Programme]:
        """Programmes of a channel starting on the given local calendar day"""
        day_start, next_day_start = local_day_bounds(day)

        async with self._read_session() as session:
            stmt = (
                select(Programme)
                .where(
                    Programme.channel_id == channel_id,
                    Programme.start >= day_start,
                    Programme.start < next_day_start,
                )
                .order_by(Programme.start)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def search_programmes(self, query: str) -> list[Programme]:
        """Case-insensitive title substring search, earliest first, capped at 200 results"""
        if not query or not query.strip():
            return []

        async with self._read_session() as session:
            stmt = (
                select(Programme)
                .where(Programme.title.icontains(query, autoescape=True))
                .order_by(Programme.start)
                .limit(SEARCH_RESULT_LIMIT)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def stats(self) -> GuideStats:
        async with self._read_session() as session:
            channel_count = (await session.execute(select(func.count()).select_from(Channel))).scalar_one()
            programme_count = (await session.execute(select(func.count()).select_from(Programme))).scalar_one()
        return GuideStats(channel_count=channel_count, programme_count=programme_count)
