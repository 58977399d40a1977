"""
Feed cache state

Persists the feed URL, HTTP caching tokens and the last successful update time
as a small JSON document.
"""
from datetime import datetime
from pathlib import Path
import asyncio
import logging

import aiofiles
import aiofiles.os
from pydantic import BaseModel, ValidationError


logger = logging.getLogger(__name__)


class FeedCacheState(BaseModel):
    """Scalar state consumed and produced by feed updates"""
    feed_url: str = ""
    etag: str | None = None
    last_modified: str | None = None
    last_update: datetime | None = None


class FeedStateStore:
    """JSON-file backed storage for FeedCacheState"""

    def __init__(self, path: str | Path, *, default_feed_url: str = ""):
        self.path = Path(path)
        self.default_feed_url = default_feed_url
        self._lock = asyncio.Lock()

    async def load(self) -> FeedCacheState:
        """
        Read the stored state

        Returns defaults (with the configured feed URL) when the file is missing or unreadable.
        """
        if not self.path.exists():
            return FeedCacheState(feed_url=self.default_feed_url)

        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw = await f.read()
            state = FeedCacheState.model_validate_json(raw)
        except (OSError, ValidationError) as e:
            logger.warning(f"Could not read feed state from {self.path}: {e}")
            return FeedCacheState(feed_url=self.default_feed_url)

        if not state.feed_url:
            state.feed_url = self.default_feed_url
        return state

    async def save(self, state: FeedCacheState) -> None:
        """Write state via a temporary file so a crash never leaves a truncated document"""
        async with self._lock:
            await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
            temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(state.model_dump_json(indent=2))
            await aiofiles.os.replace(temp_path, self.path)
        logger.debug(f"Feed state saved to {self.path}")

    async def set_feed_url(self, feed_url: str) -> FeedCacheState:
        """Store a new feed URL; caching tokens of the previous feed are dropped"""
        state = await self.load()
        feed_url = feed_url.strip()
        if feed_url != state.feed_url:
            state = FeedCacheState(feed_url=feed_url, last_update=state.last_update)
        await self.save(state)
        logger.info("Feed URL updated")
        return state
