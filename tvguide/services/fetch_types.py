"""
Shared dataclasses used across the guide ingestion pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


@dataclass(slots=True)
class ChannelPayload:
    """In-memory representation of a channel row before persistence."""
    id: str
    name: str
    icon: str | None = None


@dataclass(slots=True)
class ProgrammePayload:
    """In-memory representation of a programme row before persistence."""
    channel_id: str
    start: int
    stop: int
    title: str
    desc: str | None = None


@dataclass(slots=True, frozen=True)
class RetentionWindow:
    """Inclusive range of Unix timestamps kept in storage."""
    start: int
    end: int

    def admits(self, programme: ProgrammePayload) -> bool:
        return programme.start >= self.start and programme.stop <= self.end


@dataclass(slots=True)
class SaveResult:
    window: RetentionWindow
    channels_upserted: int = 0
    programmes_deleted: int = 0
    programmes_inserted: int = 0
    programmes_skipped: int = 0


@dataclass(slots=True)
class UpdateResult:
    status: Literal["updated", "not_modified", "skipped"]
    channels_parsed: int = 0
    programmes_parsed: int = 0
    save: SaveResult | None = None

    def to_dict(self) -> dict:
        payload: dict = {
            "status": self.status,
            "channels_parsed": self.channels_parsed,
            "programmes_parsed": self.programmes_parsed,
        }
        if self.save is not None:
            payload.update(
                {
                    "channels_upserted": self.save.channels_upserted,
                    "programmes_inserted": self.save.programmes_inserted,
                    "programmes_deleted": self.save.programmes_deleted,
                    "programmes_skipped": self.save.programmes_skipped,
                    "window_start": self.save.window.start,
                    "window_end": self.save.window.end,
                }
            )
        return payload


__all__ = [
    "ChannelPayload",
    "ProgrammePayload",
    "RetentionWindow",
    "SaveResult",
    "UpdateResult",
]
