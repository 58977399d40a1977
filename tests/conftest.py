import time
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from tvguide.database import create_engine_for_path
from tvguide.services.feed_state import FeedStateStore
from tvguide.services.fetch_types import ChannelPayload, ProgrammePayload
from tvguide.services.guide_store import GuideStore


NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def xmltv_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y%m%d%H%M%S +0000")


def epoch(value: datetime) -> int:
    return int(value.timestamp())


def build_feed(start: datetime, channel_id: str = "c1", name: str = "Channel One") -> bytes:
    """Small XMLTV document with two consecutive half-hour programmes"""
    middle = start + timedelta(minutes=30)
    end = start + timedelta(hours=1)
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE tv SYSTEM "xmltv.dtd">
<tv generator-info-name="test">
  <channel id="{channel_id}">
    <display-name>{name}</display-name>
    <icon src="http://example.com/{channel_id}.png"/>
  </channel>
  <programme channel="{channel_id}" start="{xmltv_time(start)}" stop="{xmltv_time(middle)}">
    <title lang="en">Morning News</title>
    <desc lang="en">Headlines.</desc>
  </programme>
  <programme channel="{channel_id}" start="{xmltv_time(middle)}" stop="{xmltv_time(end)}">
    <title lang="en">Weather</title>
  </programme>
</tv>
""".encode("utf-8")


def programme(channel_id: str, start: datetime, minutes: int = 30, title: str = "Show", desc: str | None = None) -> ProgrammePayload:
    return ProgrammePayload(
        channel_id=channel_id,
        start=epoch(start),
        stop=epoch(start + timedelta(minutes=minutes)),
        title=title,
        desc=desc,
    )


@pytest.fixture
def channel_one() -> ChannelPayload:
    return ChannelPayload(id="c1", name="Channel One", icon="http://x/i.png")


@pytest_asyncio.fixture
async def store(tmp_path):
    engine = create_engine_for_path(str(tmp_path / "guide.db"))
    guide_store = GuideStore(engine)
    await guide_store.migrate()
    yield guide_store
    await guide_store.close()


@pytest.fixture
def state_store(tmp_path) -> FeedStateStore:
    return FeedStateStore(tmp_path / "feed_state.json")


@pytest.fixture
def local_timezone(monkeypatch):
    """Switch the process local time zone for the duration of a test"""
    def apply(name: str) -> None:
        monkeypatch.setenv("TZ", name)
        time.tzset()

    yield apply
    monkeypatch.undo()
    time.tzset()
