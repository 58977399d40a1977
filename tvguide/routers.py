from datetime import date, datetime, timezone
from typing import Annotated
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from tvguide.dependencies import get_feed_state_store, get_guide_scheduler, get_guide_store
from tvguide.exceptions import FeedError, InvalidURL
from tvguide.schemas import (
    ChannelListResponse,
    ErrorDetail,
    FeedURLRequest,
    NowNextEntry,
    NowNextResponse,
    ProgrammeListResponse,
    StandardErrorResponse,
    StatsResponse,
)
from tvguide.services.feed_state import FeedStateStore
from tvguide.services.guide_store import GuideStore
from tvguide.services.scheduler_service import GuideScheduler


logger = logging.getLogger(__name__)

main_router = APIRouter()

StoreDep = Annotated[GuideStore, Depends(get_guide_store)]
StateDep = Annotated[FeedStateStore, Depends(get_feed_state_store)]
SchedulerDep = Annotated[GuideScheduler, Depends(get_guide_scheduler)]


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    payload = StandardErrorResponse(
        timestamp=datetime.now(timezone.utc).isoformat(),
        error=ErrorDetail(code=code, message=message),
    )
    return JSONResponse(status_code=status_code, content=payload.model_dump())


@main_router.get("/")
async def root(scheduler: SchedulerDep) -> dict:
    """Root endpoint with service information"""
    next_run = scheduler.get_next_run_time()

    return {
        "service": "TV Guide Service",
        "version": "0.1.0",
        "next_scheduled_update": next_run.isoformat() if next_run else None,
        "endpoints": {
            "update": "/update - Manually trigger feed update (POST)",
            "channels": "/channels - All channels",
            "now_next": "/now-next - Current and next programme per channel",
            "schedule": "/channels/{channel_id}/programmes?day=YYYY-MM-DD - Day schedule",
            "search": "/search?q= - Title search",
            "stats": "/stats - Guide statistics",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health")
async def health_check(scheduler: SchedulerDep) -> dict:
    """Health check endpoint"""
    next_run = scheduler.get_next_run_time()
    return {
        "status": "ok",
        "scheduler_running": scheduler.running,
        "next_update": next_run.isoformat() if next_run else None
    }


@main_router.get("/channels", response_model=ChannelListResponse)
async def get_channels(store: StoreDep) -> ChannelListResponse:
    """All channels ordered by name"""
    channels = await store.fetch_channels()
    logger.debug(f"Retrieved {len(channels)} channels")
    return ChannelListResponse.model_validate({"count": len(channels), "channels": channels}, from_attributes=True)


@main_router.get("/now-next", response_model=NowNextResponse)
async def get_now_next(store: StoreDep) -> NowNextResponse:
    """Currently airing and next programme for every channel"""
    now = datetime.now(timezone.utc)
    items = await store.fetch_now_next(now)
    return NowNextResponse(
        timestamp=now.isoformat(),
        channels=[NowNextEntry.model_validate(item, from_attributes=True) for item in items],
    )


@main_router.get("/channels/{channel_id}/programmes", response_model=ProgrammeListResponse)
async def get_channel_programmes(
    channel_id: str,
    store: StoreDep,
    day: Annotated[date | None, Query(description="Local calendar day, e.g. 2025-10-09 (default: today)")] = None,
) -> ProgrammeListResponse:
    """Schedule of one channel for a local calendar day"""
    programmes = await store.fetch_programmes(channel_id, day or date.today())
    return ProgrammeListResponse.model_validate({"count": len(programmes), "programmes": programmes}, from_attributes=True)


@main_router.get("/search", response_model=ProgrammeListResponse)
async def search_programmes(
    store: StoreDep,
    q: Annotated[str, Query(description="Case-insensitive title fragment")] = "",
) -> ProgrammeListResponse:
    """Search programme titles"""
    programmes = await store.search_programmes(q)
    logger.info(f"Search for {q!r} returned {len(programmes)} programmes")
    return ProgrammeListResponse.model_validate({"count": len(programmes), "programmes": programmes}, from_attributes=True)


@main_router.get("/stats", response_model=StatsResponse)
async def get_stats(store: StoreDep, state_store: StateDep, scheduler: SchedulerDep) -> StatsResponse:
    """Guide statistics and feed status"""
    stats = await store.stats()
    state = await state_store.load()
    return StatsResponse(
        channel_count=stats.channel_count,
        programme_count=stats.programme_count,
        feed_url=state.feed_url,
        last_update=state.last_update,
        updating=scheduler.fetcher.is_updating(),
    )


@main_router.put("/feed-url")
async def set_feed_url(request: FeedURLRequest, state_store: StateDep) -> dict:
    """Change the feed URL; the next update downloads the new feed in full"""
    state = await state_store.set_feed_url(request.feed_url)
    return {"feed_url": state.feed_url}


@main_router.post("/update", response_model=None)
async def trigger_update(scheduler: SchedulerDep) -> dict | JSONResponse:
    """
    Manually trigger a feed update

    This will download, parse and store the guide when the feed changed
    """
    logger.info("Manual feed update triggered via API")
    try:
        result = await scheduler.run_now()
    except InvalidURL as exc:
        return _error_response(400, exc.code, str(exc))
    except FeedError as exc:
        logger.error(f"Feed update failed: {exc}")
        return _error_response(502, exc.code, str(exc))

    if result.status == "skipped":
        return JSONResponse(status_code=202, content=result.to_dict())
    return result.to_dict()
