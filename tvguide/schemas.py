from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Channel(BaseModel):
    """Channel data model"""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Stable XMLTV channel ID")
    name: str = Field(..., description="Display name of the channel")
    icon: str | None = Field(None, description="URL to channel icon")


class Programme(BaseModel):
    """Programme data model"""
    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Storage-assigned programme ID")
    channel_id: str = Field(..., description="Channel ID this programme belongs to")
    start: int = Field(..., description="Start time, Unix seconds")
    stop: int = Field(..., description="Stop time, Unix seconds")
    title: str = Field(..., description="Programme title")
    desc: str | None = Field(None, description="Programme description")


class NowNextEntry(BaseModel):
    """Current and next programme for one channel"""
    model_config = ConfigDict(from_attributes=True)

    channel: Channel
    now: Programme | None
    next: Programme | None


class NowNextResponse(BaseModel):
    timestamp: str
    channels: list[NowNextEntry]


class ProgrammeListResponse(BaseModel):
    count: int
    programmes: list[Programme]


class ChannelListResponse(BaseModel):
    count: int
    channels: list[Channel]


class StatsResponse(BaseModel):
    channel_count: int
    programme_count: int
    feed_url: str
    last_update: datetime | None
    updating: bool


class FeedURLRequest(BaseModel):
    """Request to change the feed URL"""
    feed_url: str = Field(..., description="HTTP/HTTPS URL of an XMLTV feed (.xml or .xml.gz)")

    @field_validator("feed_url")
    @classmethod
    def validate_feed_url(cls, v: str) -> str:
        """Validate feed URL is HTTP/HTTPS"""
        v = v.strip()
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError(f"Feed URL must be HTTP/HTTPS: {v}")
        return v


class ErrorDetail(BaseModel):
    """Standard error detail"""
    code: str = Field(..., description="Error code (e.g., 'INVALID_URL', 'HTTP_ERROR')")
    message: str = Field(..., description="Human-readable error message")


class StandardErrorResponse(BaseModel):
    """Standardized error response for feed errors"""
    status: str = Field("error", description="Status indicator")
    timestamp: str = Field(..., description="ISO8601 timestamp of error")
    error: ErrorDetail = Field(..., description="Error details")
