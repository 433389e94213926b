"""Domain models for the media pipeline.

Assets live in the Supabase ``memes`` table; everything else here exists only
for the duration of one request.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class OutputFormat(str, Enum):
    """Download formats offered to users."""
    MP4 = "MP4"
    WEBM = "WEBM"
    GIF = "GIF"


# Stored clips are always MP4
DEFAULT_FORMAT = OutputFormat.MP4

FORMAT_CONTENT_TYPES = {
    OutputFormat.MP4: "video/mp4",
    OutputFormat.WEBM: "video/webm",
    OutputFormat.GIF: "image/gif",
}

FORMAT_EXTENSIONS = {
    OutputFormat.MP4: "mp4",
    OutputFormat.WEBM: "webm",
    OutputFormat.GIF: "gif",
}


class AudioType(str, Enum):
    """Whether a download keeps its audio track."""
    WITH = "with"
    NO = "no"


class LocationKind(str, Enum):
    """Where an asset's bytes live."""
    LOCAL = "local"
    STORAGE = "storage"


@dataclass
class MediaAsset:
    """A stored meme video and its metadata."""
    id: str
    title: str
    video_url: Optional[str]
    creator_id: Optional[str] = None
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    file_size: Optional[int] = None
    duration: Optional[float] = None
    views: int = 0
    downloads: int = 0
    tags: list[str] = field(default_factory=list)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "MediaAsset":
        """Build an asset from a ``memes`` row or a sample record."""
        return cls(
            id=str(record["id"]),
            title=record.get("title") or "",
            video_url=record.get("video_url"),
            creator_id=record.get("creator_id"),
            description=record.get("description"),
            thumbnail_url=record.get("thumbnail_url"),
            file_size=record.get("file_size"),
            duration=record.get("duration"),
            views=record.get("views") or 0,
            downloads=record.get("downloads") or 0,
            tags=list(record.get("tags") or []),
        )


@dataclass(frozen=True)
class VideoLocation:
    """Resolved location of an asset's bytes."""
    kind: LocationKind
    path: str


@dataclass(frozen=True)
class TrimRequest:
    """A validated trim interval over a source of known duration."""
    start: float
    end: float
    duration: float

    def __post_init__(self) -> None:
        values = (self.start, self.end, self.duration)
        if not all(math.isfinite(v) for v in values):
            raise ValueError("Trim times must be finite numbers")
        if self.start < 0 or self.end > self.duration or self.start >= self.end:
            raise ValueError(
                "Invalid trim times. Start must be >= 0, end must be <= duration, "
                "and start < end."
            )

    @property
    def length(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class DownloadRequest:
    """What the user asked to download."""
    asset_id: str
    format: OutputFormat = DEFAULT_FORMAT
    audio: AudioType = AudioType.WITH

    @property
    def include_audio(self) -> bool:
        return self.audio is AudioType.WITH

    @property
    def needs_transcode(self) -> bool:
        """Whether the stored MP4 must be re-encoded to satisfy the request."""
        return self.format is not DEFAULT_FORMAT or not self.include_audio


@dataclass
class DownloadResult:
    """Bytes to send back plus their headers."""
    content: bytes
    format: OutputFormat
    download_name: str
    transcoded: bool = False

    @property
    def content_type(self) -> str:
        return FORMAT_CONTENT_TYPES[self.format]


@dataclass
class TrimResult:
    """A trimmed clip held in memory."""
    content: bytes
    download_name: str
    duration: float
