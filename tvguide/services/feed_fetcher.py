"""
Feed Fetching Service

Performs the conditional download of the XMLTV feed and drives decoding,
parsing and persistence of a new guide.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import httpx

from tvguide.exceptions import HTTPError, InvalidResponse, InvalidURL, ParseError
from tvguide.services.decoder import decompress
from tvguide.services.feed_state import FeedStateStore
from tvguide.services.fetch_types import ChannelPayload, ProgrammePayload, UpdateResult
from tvguide.services.guide_store import GuideStore
from tvguide.services.xmltv_parser_service import StreamingGuideParser
from tvguide.utils.logging_helpers import log_update_summary, sanitize_url


logger = logging.getLogger(__name__)


def validate_feed_url(raw_url: str) -> httpx.URL:
    """
    Parse the configured feed URL

    Raises:
        InvalidURL: If the URL is empty, unparsable, not HTTP/HTTPS, or has no host
    """
    url_text = (raw_url or "").strip()
    if not url_text:
        raise InvalidURL()

    try:
        url = httpx.URL(url_text)
    except (httpx.InvalidURL, TypeError, ValueError) as exc:
        raise InvalidURL() from exc

    if url.scheme not in ("http", "https") or not url.host:
        raise InvalidURL()
    return url


def is_likely_gzip(url: httpx.URL, content_type: str | None) -> bool:
    """Guess whether a body is gzip from the URL extension or Content-Type"""
    if url.path.lower().endswith(".gz"):
        return True
    return content_type is not None and "gzip" in content_type.lower()


class FeedFetcher:
    """
    Runs feed updates: conditional GET, decode, parse, save.

    Only one update runs at a time; a call arriving while one is in flight is skipped.
    Cancelling the calling task leaves stored data and caching tokens untouched.
    """

    def __init__(
        self,
        store: GuideStore,
        state_store: FeedStateStore,
        *,
        request_timeout: float = 30.0,
        parse_timeout: float | None = 600,
        transport: httpx.AsyncBaseTransport | None = None,
        parser: StreamingGuideParser | None = None,
    ) -> None:
        self._store = store
        self._state_store = state_store
        self._request_timeout = request_timeout
        self._parse_timeout = parse_timeout if parse_timeout and parse_timeout > 0 else None
        self._transport = transport
        self._parser = parser or StreamingGuideParser()
        self._lock = asyncio.Lock()

    def is_updating(self) -> bool:
        return self._lock.locked()

    async def update(self) -> UpdateResult:
        """
        Fetch the feed and store its guide when it changed

        Returns:
            UpdateResult with status "updated", "not_modified" or "skipped"

        Raises:
            InvalidURL: Feed URL empty or unparsable
            InvalidResponse: No usable HTTP response
            HTTPError: Status other than 200/304
            ParseError: Document not well-formed
        """
        if self._lock.locked():
            logger.warning("Feed update already in progress, skipping this request")
            return UpdateResult(status="skipped")

        async with self._lock:
            logger.info("Feed update started at %s", datetime.now(timezone.utc).isoformat())
            result = await self._run()
            log_update_summary(logger, result)
            return result

    async def _run(self) -> UpdateResult:
        state = await self._state_store.load()
        url = validate_feed_url(state.feed_url)
        safe_url = sanitize_url(str(url))

        headers = {"Cache-Control": "no-cache"}
        if state.etag:
            headers["If-None-Match"] = state.etag
        if state.last_modified:
            headers["If-Modified-Since"] = state.last_modified

        logger.info("Requesting %s (conditional: %s)", safe_url, len(headers) > 1)
        response = await self._get(url, headers)

        if response.status_code == 304:
            logger.info("Feed not modified since last update")
            return UpdateResult(status="not_modified")

        if response.status_code != 200:
            logger.error("Feed request to %s failed with HTTP %s", safe_url, response.status_code)
            raise HTTPError(response.status_code)

        body = response.content
        gzip_hint = is_likely_gzip(url, response.headers.get("Content-Type"))
        logger.info(
            "Downloaded %.2f MB (gzip hint: %s)",
            len(body) / (1024 * 1024),
            gzip_hint,
        )

        channels, programmes = await self._decode_and_parse_async(body, gzip_hint)
        save_result = await self._store.save(channels, programmes)

        # Tokens are persisted only after the guide is stored, so a failed
        # parse or save is retried with a full download next time.
        await self._record_success(
            state.feed_url,
            response.headers.get("ETag"),
            response.headers.get("Last-Modified"),
        )

        return UpdateResult(
            status="updated",
            channels_parsed=len(channels),
            programmes_parsed=len(programmes),
            save=save_result,
        )

    async def _get(self, url: httpx.URL, headers: dict[str, str]) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                timeout=self._request_timeout,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                return await client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Feed request failed (%s): %s", type(exc).__name__, exc)
            raise InvalidResponse() from exc

    def _decode_and_parse(
        self, body: bytes, gzip_hint: bool
    ) -> tuple[list[ChannelPayload], list[ProgrammePayload]]:
        return self._parser.parse(decompress(body, gzip_hint))

    async def _decode_and_parse_async(
        self, body: bytes, gzip_hint: bool
    ) -> tuple[list[ChannelPayload], list[ProgrammePayload]]:
        """Decode and parse in the default executor so the event loop keeps serving reads"""
        loop = asyncio.get_running_loop()
        parse_task = loop.run_in_executor(None, self._decode_and_parse, body, gzip_hint)
        try:
            if self._parse_timeout:
                return await asyncio.wait_for(parse_task, timeout=self._parse_timeout)
            return await parse_task
        except asyncio.TimeoutError as exc:
            logger.error("XMLTV parsing timed out after %ss", self._parse_timeout)
            raise ParseError("Feed parsing timed out.") from exc

    async def _record_success(
        self,
        feed_url: str,
        etag: str | None,
        last_modified: str | None,
    ) -> None:
        state = await self._state_store.load()

        if state.feed_url != feed_url:
            # URL changed during the update; these tokens belong to the old feed
            logger.warning("Feed URL changed during update; caching tokens not stored")
        else:
            if etag:
                state.etag = etag
            if last_modified:
                state.last_modified = last_modified

        state.last_update = datetime.now(timezone.utc)
        await self._state_store.save(state)
