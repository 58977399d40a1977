"""
Dependency providers

Components are built once in the application lifespan and kept on `app.state`;
these providers hand them to route handlers, and tests can swap them via
`app.dependency_overrides`.
"""
from fastapi import Request

from tvguide.services.feed_state import FeedStateStore
from tvguide.services.guide_store import GuideStore
from tvguide.services.scheduler_service import GuideScheduler


def get_guide_store(request: Request) -> GuideStore:
    return request.app.state.guide_store


def get_feed_state_store(request: Request) -> FeedStateStore:
    return request.app.state.feed_state_store


def get_guide_scheduler(request: Request) -> GuideScheduler:
    return request.app.state.guide_scheduler
