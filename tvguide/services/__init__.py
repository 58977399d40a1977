"""
Services package for the guide service

This package contains the ingestion pipeline, storage and scheduling components.
"""
from tvguide.services.decoder import decompress
from tvguide.services.feed_fetcher import FeedFetcher
from tvguide.services.feed_state import FeedCacheState, FeedStateStore
from tvguide.services.guide_store import GuideStats, GuideStore, NowNext
from tvguide.services.scheduler_service import GuideScheduler
from tvguide.services.xmltv_parser_service import StreamingGuideParser, parse_xmltv

__all__ = [
    'decompress',
    'FeedFetcher',
    'FeedCacheState',
    'FeedStateStore',
    'GuideStats',
    'GuideStore',
    'NowNext',
    'GuideScheduler',
    'StreamingGuideParser',
    'parse_xmltv',
]
