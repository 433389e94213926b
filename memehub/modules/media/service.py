"""Media pipeline services: trimming uploads and preparing downloads.

Trimming is strict: any failure is reported to the user, because a silently
wrong cut is worse than an error. Downloads degrade instead: lookups fall back
to sample data and failed transcodes fall back to the stored bytes, so the
user always gets something playable.
"""

import logging
import re
import time
from pathlib import Path
from typing import Optional, Sequence
from urllib.parse import unquote, urlparse

from memehub.core.logging import log_warning
from memehub.core.metrics import DOWNLOAD_BYTES_TOTAL, DOWNLOAD_FALLBACKS_TOTAL
from memehub.core.storage import StorageBackend, StorageError
from memehub.modules.media.errors import (
    EmptyAssetError,
    NotFoundError,
    StorageFetchError,
    ValidationError,
)
from memehub.modules.media.fallback import Attempt, Outcome, first_hit
from memehub.modules.media.ffmpeg import Transcoder, Trimmer
from memehub.modules.media.models import (
    DEFAULT_FORMAT,
    FORMAT_EXTENSIONS,
    DownloadRequest,
    DownloadResult,
    LocationKind,
    MediaAsset,
    OutputFormat,
    TrimRequest,
    TrimResult,
    VideoLocation,
)
from memehub.modules.media.sources import AssetSource
from memehub.modules.media.workspace import temp_workspace

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"[^a-z0-9]", re.IGNORECASE | re.ASCII)


def parse_seconds(value: str, field: str) -> float:
    """Parse a user-supplied time offset in seconds.

    Raises:
        ValidationError: If the value is not a number
    """
    try:
        return float(value.strip())
    except (AttributeError, ValueError):
        raise ValidationError(f"{field} must be a number of seconds, got {value!r}")


def build_trim_request(start_time: str, end_time: str, duration: float) -> TrimRequest:
    """Parse and validate a trim interval against the source duration.

    Raises:
        ValidationError: If either time is not numeric or the interval
            violates ``0 <= start < end <= duration``
    """
    start = parse_seconds(start_time, "startTime")
    end = parse_seconds(end_time, "endTime")
    try:
        return TrimRequest(start=start, end=end, duration=duration)
    except ValueError as e:
        raise ValidationError(str(e))


def make_download_name(title: str, extension: str) -> str:
    """Build the attachment filename: the lowercased title with every
    character outside ``[a-z0-9]`` replaced by ``-``."""
    return f"{_SLUG_RE.sub('-', title).lower()}.{extension}"


def resolve_video_location(
    video_url: str,
    bucket: str = "memes",
    url_marker: str = "supabase.co",
) -> VideoLocation:
    """Work out where an asset's bytes live.

    Public storage URLs are reduced to their object key, root-relative paths
    are static files, anything else is already an object key.
    """
    location = video_url.strip()

    if url_marker and url_marker in location:
        path = urlparse(location).path
        match = re.search(rf"/public/{re.escape(bucket)}/(.+)$", path)
        if match:
            location = unquote(match.group(1))
            logger.debug("Extracted object key from storage URL: %s", location)

    if location.startswith("/"):
        return VideoLocation(kind=LocationKind.LOCAL, path=location)
    return VideoLocation(kind=LocationKind.STORAGE, path=location)


class TrimService:
    """Cuts an uploaded clip to a requested interval."""

    def __init__(self, trimmer: Trimmer, temp_root: Optional[str] = None):
        self.trimmer = trimmer
        self.temp_root = temp_root

    def trim(
        self,
        data: Optional[bytes],
        start_time: Optional[str],
        end_time: Optional[str],
    ) -> TrimResult:
        """Trim ``data`` to ``[start_time, end_time)``.

        The workspace holding the upload and the cut is removed before this
        returns or raises.

        Raises:
            ValidationError: Missing input or an invalid interval
            TranscodeError: ffprobe or ffmpeg failed
        """
        if not data:
            raise ValidationError("No file provided")
        if not start_time or not end_time:
            raise ValidationError("Start and end times required")

        with temp_workspace("video-trim", self.temp_root) as work_dir:
            input_path = work_dir / "input.mp4"
            output_path = work_dir / "output.mp4"
            input_path.write_bytes(data)

            duration = self.trimmer.probe_duration(input_path)
            request = build_trim_request(start_time, end_time, duration)

            logger.info(
                "Trimming clip",
                extra={
                    "start": request.start,
                    "end": request.end,
                    "source_duration": duration,
                    "input_bytes": len(data),
                },
            )
            self.trimmer.trim(input_path, output_path, request.start, request.end)
            content = output_path.read_bytes()

        return TrimResult(
            content=content,
            download_name=f"trimmed_{int(time.time() * 1000)}.mp4",
            duration=request.length,
        )


class DownloadService:
    """Finds a stored meme and prepares it for download."""

    def __init__(
        self,
        sources: Sequence[AssetSource],
        storage: StorageBackend,
        transcoder: Transcoder,
        transcoding_enabled: bool = False,
        static_root: str = "./public",
        bucket: str = "memes",
        url_marker: str = "supabase.co",
        temp_root: Optional[str] = None,
    ):
        """Initialize download service.

        Args:
            sources: Asset sources, tried in order
            storage: Object storage holding uploaded videos
            transcoder: Used for format/audio conversion
            transcoding_enabled: Whether the media tool exists in this deployment
            static_root: Directory that root-relative video paths resolve against
            bucket: Storage bucket named in public video URLs
            url_marker: Substring identifying public storage URLs
            temp_root: Parent directory for transcode workspaces
        """
        self.sources = list(sources)
        self.storage = storage
        self.transcoder = transcoder
        self.transcoding_enabled = transcoding_enabled
        self.static_root = Path(static_root)
        self.bucket = bucket
        self.url_marker = url_marker
        self.temp_root = temp_root

    def download(self, request: DownloadRequest) -> DownloadResult:
        """Produce the bytes and headers for a download.

        Raises:
            NotFoundError: No source knows the asset, or it has no video
            StorageFetchError: Stored bytes could not be read
            EmptyAssetError: Stored object is empty
        """
        asset = self.find_asset(request.asset_id)
        if not asset.video_url:
            raise NotFoundError("Video URL not found for meme")

        location = self.locate(asset.video_url)
        original = self.fetch_bytes(location)
        if not original:
            raise EmptyAssetError("Video file is empty or corrupt")

        content, output_format, transcoded = self.render(original, request)
        result = DownloadResult(
            content=content,
            format=output_format,
            download_name=make_download_name(asset.title, FORMAT_EXTENSIONS[output_format]),
            transcoded=transcoded,
        )
        DOWNLOAD_BYTES_TOTAL.labels(format=output_format.value).inc(len(content))
        logger.info(
            "Prepared download",
            extra={
                "asset_id": asset.id,
                "download_name": result.download_name,
                "size_bytes": len(content),
                "content_type": result.content_type,
                "transcoded": transcoded,
            },
        )
        return result

    def find_asset(self, asset_id: str) -> MediaAsset:
        """Look the asset up in each source until one has it."""
        chain = first_hit(
            (lambda source=source: source.lookup(asset_id)) for source in self.sources
        )
        winner = chain.winner
        if winner is None:
            logger.warning("Meme not found: %s", asset_id)
            raise NotFoundError("Meme not found")

        if chain.degraded:
            for attempt in chain.attempts[:-1]:
                DOWNLOAD_FALLBACKS_TOTAL.labels(stage="lookup", reason=attempt.outcome.value).inc()
        return winner.value

    def locate(self, video_url: str) -> VideoLocation:
        """Resolve a stored ``video_url`` to where its bytes live.

        URLs issued by the configured storage backend map back to their object
        key; anything else goes through ``resolve_video_location``.
        """
        key = self.storage.key_from_url(video_url.strip())
        if key:
            return VideoLocation(kind=LocationKind.STORAGE, path=key)
        return resolve_video_location(video_url, self.bucket, self.url_marker)

    def fetch_bytes(self, location: VideoLocation) -> bytes:
        """Read an asset's bytes from disk or object storage.

        Raises:
            StorageFetchError: If the bytes cannot be read
        """
        if location.kind is LocationKind.LOCAL:
            root = self.static_root.resolve()
            path = (root / location.path.lstrip("/")).resolve()
            if not path.is_relative_to(root):
                raise StorageFetchError("Failed to read local video file")
            logger.info("Reading local video from %s", path)
            try:
                return path.read_bytes()
            except OSError as e:
                raise StorageFetchError("Failed to read local video file") from e

        logger.info("Downloading from storage: %s", location.path)
        try:
            return self.storage.download_bytes(location.path)
        except StorageError as e:
            raise StorageFetchError(str(e)) from e

    def render(self, original: bytes, request: DownloadRequest) -> tuple[bytes, OutputFormat, bool]:
        """Return ``(content, format, transcoded)`` for the request.

        Without a transcode attempt the original bytes go out labelled with
        the requested format. A failed transcode falls back to the original
        bytes labelled as the stored MP4: the label follows the bytes, so a GIF
        request whose conversion failed is served as ``video/mp4``, not
        ``image/gif``.
        """
        steps = []
        attempt_transcode = self.transcoding_enabled and request.needs_transcode
        if attempt_transcode:
            steps.append(lambda: self._transcode(original, request))

        fallback_format = DEFAULT_FORMAT if attempt_transcode else request.format
        steps.append(lambda: Attempt.hit("original", original))

        chain = first_hit(steps)
        winner = chain.winner
        if winner.source == "transcode":
            return winner.value, request.format, True

        if chain.degraded:
            failed = chain.attempts[0]
            DOWNLOAD_FALLBACKS_TOTAL.labels(stage="transcode", reason=failed.outcome.value).inc()
            log_warning(
                logger,
                "Transcoding failed, returning original video",
                exception=failed.error,
                asset_id=request.asset_id,
                requested_format=request.format.value,
            )
        return winner.value, fallback_format, False

    def _transcode(self, original: bytes, request: DownloadRequest) -> Attempt[bytes]:
        extension = FORMAT_EXTENSIONS[request.format]
        try:
            with temp_workspace("video-download", self.temp_root) as work_dir:
                input_path = work_dir / "input.mp4"
                output_path = work_dir / f"output.{extension}"
                input_path.write_bytes(original)
                self.transcoder.convert(
                    input_path,
                    output_path,
                    request.format,
                    include_audio=request.include_audio,
                )
                content = output_path.read_bytes()
        except Exception as e:
            return Attempt.failed("transcode", e)

        if not content:
            return Attempt(source="transcode", outcome=Outcome.MISS)
        return Attempt.hit("transcode", content)
