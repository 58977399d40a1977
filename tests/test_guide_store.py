from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from tvguide.services.fetch_types import ChannelPayload, ProgrammePayload
from tvguide.services.guide_store import SEARCH_RESULT_LIMIT

from conftest import NOW, epoch, programme


async def test_channel_round_trip(store, channel_one):
    await store.save([channel_one], [], now=NOW)

    channels = await store.fetch_channels()

    assert [(c.id, c.name, c.icon) for c in channels] == [("c1", "Channel One", "http://x/i.png")]


async def test_migrate_is_idempotent(store, channel_one):
    await store.save([channel_one], [], now=NOW)
    await store.migrate()

    assert (await store.stats()).channel_count == 1


async def test_channels_are_ordered_by_name(store):
    await store.save(
        [
            ChannelPayload(id="z", name="Charlie"),
            ChannelPayload(id="y", name="Alpha"),
            ChannelPayload(id="x", name="Bravo"),
        ],
        [],
        now=NOW,
    )

    assert [c.name for c in await store.fetch_channels()] == ["Alpha", "Bravo", "Charlie"]


async def test_channel_upsert_last_write_wins(store, channel_one):
    await store.save([channel_one], [], now=NOW)
    await store.save(
        [
            ChannelPayload(id="c1", name="First rename", icon="http://x/other.png"),
            ChannelPayload(id="c1", name="Channel 1"),
        ],
        [],
        now=NOW,
    )

    channels = await store.fetch_channels()

    assert [(c.id, c.name, c.icon) for c in channels] == [("c1", "Channel 1", None)]


async def test_save_is_idempotent(store, channel_one):
    batch = [programme("c1", NOW), programme("c1", NOW + timedelta(minutes=30))]

    first = await store.save([channel_one], batch, now=NOW)
    second = await store.save([channel_one], batch, now=NOW)

    assert first.programmes_inserted == 2
    assert second.programmes_inserted == 0
    assert second.programmes_skipped == 2
    stats = await store.stats()
    assert (stats.channel_count, stats.programme_count) == (1, 2)


async def test_duplicate_start_keeps_first_programme(store, channel_one):
    await store.save(
        [channel_one],
        [programme("c1", NOW, title="Original"), programme("c1", NOW, minutes=60, title="Replacement")],
        now=NOW,
    )

    programmes = await store.fetch_programmes("c1", NOW)

    assert [(p.title, p.stop - p.start) for p in programmes] == [("Original", 1800)]


async def test_programme_ids_are_assigned_on_insert(store, channel_one):
    await store.save([channel_one], [programme("c1", NOW), programme("c1", NOW + timedelta(hours=1))], now=NOW)

    ids = [p.id for p in await store.search_programmes("show")]

    assert len(set(ids)) == 2
    assert all(isinstance(value, int) for value in ids)


async def test_only_programmes_inside_window_are_admitted(store, channel_one):
    window = store.retention_window(NOW)
    inside = ProgrammePayload("c1", window.start, window.start + 600, "Oldest kept")
    at_end = ProgrammePayload("c1", window.end - 600, window.end, "Latest kept")
    too_old = ProgrammePayload("c1", window.start - 60, window.start + 600, "Started too early")
    too_late = ProgrammePayload("c1", window.end - 600, window.end + 1, "Ends too late")

    result = await store.save([channel_one], [inside, at_end, too_old, too_late], now=NOW)

    assert result.programmes_inserted == 2
    titles = {p.title for p in await store.search_programmes("kept")}
    assert titles == {"Oldest kept", "Latest kept"}
    for stored in await store.search_programmes("e"):
        assert window.start <= stored.start and stored.stop <= window.end


async def test_window_is_twelve_hours_back_and_seven_days_ahead(store):
    window = store.retention_window(NOW)

    assert window.start == epoch(NOW) - 12 * 3600
    assert window.end == epoch(NOW) + 7 * 24 * 3600


async def test_expired_programmes_are_pruned_by_an_empty_save(store, channel_one):
    await store.save([channel_one], [programme("c1", NOW)], now=NOW)

    result = await store.save([], [], now=NOW + timedelta(days=1))

    assert result.programmes_deleted == 1
    assert (await store.stats()).programme_count == 0
    assert (await store.stats()).channel_count == 1


async def test_programmes_with_invalid_range_or_unknown_channel_are_skipped(store, channel_one):
    backwards = ProgrammePayload("c1", epoch(NOW) + 600, epoch(NOW), "Backwards")
    empty = ProgrammePayload("c1", epoch(NOW), epoch(NOW), "Zero length")
    orphan = programme("nowhere", NOW, title="Orphan")

    result = await store.save([channel_one], [backwards, empty, orphan, programme("c1", NOW)], now=NOW)

    assert result.programmes_inserted == 1
    assert result.programmes_skipped == 3


async def test_programmes_for_previously_stored_channel_are_accepted(store, channel_one):
    await store.save([channel_one], [], now=NOW)

    result = await store.save([], [programme("c1", NOW)], now=NOW)

    assert result.programmes_inserted == 1


async def test_failed_save_leaves_previous_state(store, channel_one, monkeypatch):
    await store.save([channel_one], [programme("c1", NOW - timedelta(hours=11))], now=NOW)

    async def broken_insert(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(store, "_insert_programmes", broken_insert)

    with pytest.raises(OperationalError):
        await store.save(
            [ChannelPayload(id="c1", name="Renamed"), ChannelPayload(id="c2", name="New")],
            [],
            now=NOW + timedelta(hours=2),
        )

    channels = await store.fetch_channels()
    assert [(c.id, c.name) for c in channels] == [("c1", "Channel One")]
    assert (await store.stats()).programme_count == 1


async def test_now_next_mid_programme(store, channel_one):
    t = NOW
    await store.save([channel_one], [programme("c1", t, title="First"), programme("c1", t + timedelta(minutes=30), title="Second")], now=t)

    [entry] = await store.fetch_now_next(t + timedelta(minutes=15))

    assert entry.channel.id == "c1"
    assert entry.now.title == "First"
    assert entry.next.title == "Second"


async def test_now_next_at_programme_boundary(store, channel_one):
    t = NOW
    await store.save([channel_one], [programme("c1", t, title="First"), programme("c1", t + timedelta(minutes=30), title="Second")], now=t)

    [entry] = await store.fetch_now_next(t + timedelta(minutes=30))

    assert entry.now.title == "Second"
    assert entry.next is None


async def test_now_next_with_gap_and_empty_channel(store, channel_one):
    await store.save(
        [channel_one, ChannelPayload(id="c2", name="Another")],
        [programme("c1", NOW + timedelta(hours=2), title="Later")],
        now=NOW,
    )

    entries = await store.fetch_now_next(NOW)

    assert [e.channel.name for e in entries] == ["Another", "Channel One"]
    empty, gap = entries
    assert (empty.now, empty.next) == (None, None)
    assert gap.now is None
    assert gap.next.title == "Later"


async def test_day_schedule_uses_local_day_boundaries(store, channel_one, local_timezone):
    local_timezone("Europe/Amsterdam")
    # 23:30 UTC on the 14th is already 00:30 on the 15th in Amsterdam
    batch = [
        programme("c1", datetime(2025, 1, 14, 22, 30, tzinfo=timezone.utc), title="Late on the 14th"),
        programme("c1", datetime(2025, 1, 14, 23, 30, tzinfo=timezone.utc), title="Early on the 15th"),
        programme("c1", datetime(2025, 1, 15, 22, 30, tzinfo=timezone.utc), title="Late on the 15th"),
        programme("c1", datetime(2025, 1, 15, 23, 0, tzinfo=timezone.utc), title="Midnight on the 16th"),
    ]
    await store.save([channel_one], batch, now=datetime(2025, 1, 14, 20, 0, tzinfo=timezone.utc))

    programmes = await store.fetch_programmes("c1", date(2025, 1, 15))

    assert [p.title for p in programmes] == ["Early on the 15th", "Late on the 15th"]
    assert await store.fetch_programmes("other", date(2025, 1, 15)) == []


async def test_search_is_case_insensitive_and_ordered(store, channel_one):
    await store.save(
        [channel_one],
        [
            programme("c1", NOW + timedelta(hours=2), title="The NEWS at Ten"),
            programme("c1", NOW, title="Morning news"),
            programme("c1", NOW + timedelta(hours=1), title="Weather"),
        ],
        now=NOW,
    )

    results = await store.search_programmes("news")

    assert [p.title for p in results] == ["Morning news", "The NEWS at Ten"]


async def test_empty_search_returns_nothing(store, channel_one):
    await store.save([channel_one], [programme("c1", NOW)], now=NOW)

    assert await store.search_programmes("") == []
    assert await store.search_programmes("   ") == []


async def test_search_treats_wildcards_literally(store, channel_one):
    await store.save(
        [channel_one],
        [programme("c1", NOW, title="100% Hits"), programme("c1", NOW + timedelta(hours=1), title="Top_40")],
        now=NOW,
    )

    assert [p.title for p in await store.search_programmes("%")] == ["100% Hits"]
    assert [p.title for p in await store.search_programmes("_")] == ["Top_40"]


async def test_search_is_capped(store, channel_one):
    batch = [programme("c1", NOW + timedelta(minutes=5 * i), minutes=5, title=f"Episode {i}") for i in range(250)]
    await store.save([channel_one], batch, now=NOW)

    results = await store.search_programmes("episode")

    assert len(results) == SEARCH_RESULT_LIMIT
    assert results[0].title == "Episode 0"


async def test_stats_on_empty_store(store):
    stats = await store.stats()

    assert (stats.channel_count, stats.programme_count) == (0, 0)


async def test_query_results_are_readable_after_the_call(store, channel_one, local_timezone):
    local_timezone("UTC")
    await store.save(
        [channel_one],
        [
            programme("c1", NOW - timedelta(minutes=10), title="Live", desc="On air"),
            programme("c1", NOW + timedelta(minutes=20), title="Later"),
        ],
        now=NOW,
    )

    [channel] = await store.fetch_channels()
    [entry] = await store.fetch_now_next(NOW)
    day = await store.fetch_programmes("c1", NOW.date())
    found = await store.search_programmes("live")

    assert (channel.id, channel.name, channel.icon) == ("c1", "Channel One", "http://x/i.png")
    assert (entry.channel.name, entry.now.title, entry.now.desc, entry.next.title) == (
        "Channel One",
        "Live",
        "On air",
        "Later",
    )
    assert [(p.channel_id, p.title, p.stop - p.start) for p in day] == [("c1", "Live", 1800), ("c1", "Later", 1800)]
    assert [(p.id, p.title, p.desc) for p in found] == [(day[0].id, "Live", "On air")]
