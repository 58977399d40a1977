"""
Streaming XMLTV parsing

Feeds the document to lxml's incremental parser with a target object, so only
the two output batches and one small accumulator per open record stay in memory.
"""
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import BinaryIO
import logging

from lxml import etree  # type: ignore

from tvguide.exceptions import ParseError
from tvguide.services.fetch_types import ChannelPayload, ProgrammePayload
from tvguide.utils.timezone import parse_xmltv_timestamp

logger = logging.getLogger(__name__)

FEED_CHUNK_SIZE = 64 * 1024

# element name -> record field receiving its text
CHANNEL_TEXT_FIELDS = {"display-name": "name"}
PROGRAMME_TEXT_FIELDS = {"title": "title", "desc": "desc"}

GuideSource = bytes | bytearray | memoryview | BinaryIO | Iterable[bytes]


@dataclass
class _Accumulator:
    attributes: dict[str, str | None]
    text: dict[str, str] = field(default_factory=dict)
    # fields whose first non-empty element has closed
    completed: set[str] = field(default_factory=set)

    def append(self, name: str, chunk: str) -> None:
        if name in self.completed:
            return
        current = self.text.get(name, "")
        if not current and not chunk.strip():
            return
        self.text[name] = current + chunk

    def complete(self, name: str) -> None:
        if name in self.completed:
            return
        value = self.text.get(name, "").strip()
        if value:
            self.text[name] = value
            self.completed.add(name)
        else:
            self.text.pop(name, None)

    def value(self, name: str) -> str | None:
        return self.text[name] if name in self.completed else None


class GuideParserTarget:
    """
    State machine receiving start/text/end events for one XMLTV document.

    Collects valid channels and programmes; incomplete or invalid records are
    dropped without raising.
    """

    def __init__(self) -> None:
        self.channels: list[ChannelPayload] = []
        self.programmes: list[ProgrammePayload] = []
        self.skipped_channels = 0
        self.skipped_programmes = 0
        self._channel: _Accumulator | None = None
        self._programme: _Accumulator | None = None
        # one entry per open element: the record field its text feeds, or None
        self._text_targets: list[str | None] = []

    def on_element_start(self, tag: str, attrib) -> None:
        target = None

        if tag == "channel":
            self._channel = _Accumulator({"id": attrib.get("id")})
        elif tag == "programme":
            self._programme = _Accumulator(
                {
                    "channel": attrib.get("channel"),
                    "start": attrib.get("start"),
                    "stop": attrib.get("stop"),
                }
            )
        elif tag == "icon" and self._channel is not None:
            src = attrib.get("src")
            if src:
                self._channel.attributes["icon"] = src
        elif self._channel is not None and tag in CHANNEL_TEXT_FIELDS:
            target = CHANNEL_TEXT_FIELDS[tag]
        elif self._programme is not None and tag in PROGRAMME_TEXT_FIELDS:
            target = PROGRAMME_TEXT_FIELDS[tag]

        self._text_targets.append(target)

    def on_text(self, text: str) -> None:
        if not self._text_targets:
            return
        target = self._text_targets[-1]
        if target is None:
            return
        record = self._channel if target in CHANNEL_TEXT_FIELDS.values() else self._programme
        if record is not None:
            record.append(target, text)

    def on_element_end(self, tag: str) -> None:
        target = self._text_targets.pop() if self._text_targets else None

        if target is not None:
            record = self._channel if target in CHANNEL_TEXT_FIELDS.values() else self._programme
            if record is not None:
                record.complete(target)
            return

        if tag == "channel" and self._channel is not None:
            self._finish_channel(self._channel)
            self._channel = None
        elif tag == "programme" and self._programme is not None:
            self._finish_programme(self._programme)
            self._programme = None

    def _finish_channel(self, record: _Accumulator) -> None:
        channel_id = record.attributes.get("id")
        name = record.value("name")
        if not channel_id or not name:
            self.skipped_channels += 1
            logger.debug("Skipping channel without id or display name (id=%s)", channel_id)
            return

        self.channels.append(
            ChannelPayload(id=channel_id, name=name, icon=record.attributes.get("icon"))
        )

    def _finish_programme(self, record: _Accumulator) -> None:
        channel_id = record.attributes.get("channel")
        start_text = record.attributes.get("start")
        stop_text = record.attributes.get("stop")
        title = record.value("title")

        if not channel_id or not start_text or not stop_text or title is None:
            self.skipped_programmes += 1
            logger.debug("Skipping programme with missing fields on channel %s", channel_id)
            return

        start = parse_xmltv_timestamp(start_text)
        stop = parse_xmltv_timestamp(stop_text)
        if start is None or stop is None:
            self.skipped_programmes += 1
            logger.debug(
                "Skipping programme with unparseable time (start=%r, stop=%r)",
                start_text,
                stop_text,
            )
            return

        self.programmes.append(
            ProgrammePayload(
                channel_id=channel_id,
                start=start,
                stop=stop,
                title=title,
                desc=record.value("desc"),
            )
        )

    # lxml parser target protocol
    def start(self, tag, attrib) -> None:
        self.on_element_start(tag, attrib)

    def data(self, text) -> None:
        self.on_text(text)

    def end(self, tag) -> None:
        self.on_element_end(tag)

    def close(self) -> tuple[list[ChannelPayload], list[ProgrammePayload]]:
        return self.channels, self.programmes


class StreamingGuideParser:
    """Parses XMLTV bytes into channel and programme batches without building a tree"""

    def __init__(self, chunk_size: int = FEED_CHUNK_SIZE):
        self.chunk_size = chunk_size

    def parse(self, source: GuideSource) -> tuple[list[ChannelPayload], list[ProgrammePayload]]:
        """
        Parse an XMLTV document

        Args:
            source: Whole document as bytes, a binary file object, or an iterable of byte chunks

        Returns:
            Tuple of (channels, programmes)

        Raises:
            ParseError: If the document is not well-formed XML
        """
        target = GuideParserTarget()
        parser = etree.XMLParser(
            target=target,
            resolve_entities=False,
            no_network=True,
            huge_tree=True,
        )

        fed = False
        try:
            for chunk in self._chunks(source):
                parser.feed(chunk)
                fed = True
            if not fed:
                raise ParseError("Feed document is empty.")
            channels, programmes = parser.close()
        except etree.ParseError as exc:
            logger.error("XMLTV document is not well-formed: %s", exc)
            raise ParseError(f"Feed document is not well-formed XML: {exc}") from exc

        logger.info(
            "XMLTV parsing complete: %s channels, %s programmes (skipped %s channels, %s programmes)",
            len(channels),
            len(programmes),
            target.skipped_channels,
            target.skipped_programmes,
        )
        return channels, programmes

    def _chunks(self, source: GuideSource) -> Iterable[bytes]:
        if isinstance(source, (bytes, bytearray, memoryview)):
            view = memoryview(source)
            for offset in range(0, len(view), self.chunk_size):
                yield bytes(view[offset:offset + self.chunk_size])
        elif hasattr(source, "read"):
            while chunk := source.read(self.chunk_size):
                yield chunk
        else:
            for chunk in source:
                if chunk:
                    yield bytes(chunk)


def parse_xmltv(source: GuideSource) -> tuple[list[ChannelPayload], list[ProgrammePayload]]:
    """Parse an XMLTV document with default settings"""
    return StreamingGuideParser().parse(source)
