"""FFmpeg-backed transcoding, trimming and probing.

Every operation is one blocking subprocess call: no retries, no partial
output handling. Callers decide what a failure means.
"""

import logging
import math
import subprocess
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from memehub.core.metrics import MEDIA_OPERATIONS_TOTAL, MEDIA_OPERATION_DURATION_SECONDS
from memehub.core.tracing import create_span, add_span_attributes, record_exception
from memehub.modules.media.errors import TranscodeError, UnsupportedFormatError
from memehub.modules.media.models import OutputFormat

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# GIF output is downsampled to keep files shareable
GIF_FPS = 10
GIF_WIDTH = 320
MP4_CRF = 23

# Keep the tail of ffmpeg's stderr, that is where the actual error is
MAX_DIAGNOSTIC_CHARS = 2000


class Transcoder(ABC):
    """Converts a stored video into a requested output format."""

    @abstractmethod
    def convert(
        self,
        source: PathLike,
        destination: PathLike,
        output_format: OutputFormat,
        include_audio: bool = True,
    ) -> None:
        """Write ``source`` re-encoded as ``output_format`` to ``destination``.

        Raises:
            UnsupportedFormatError: If ``output_format`` cannot be produced
            TranscodeError: If the conversion fails
        """


class Trimmer(ABC):
    """Cuts a time interval out of a video."""

    @abstractmethod
    def probe_duration(self, source: PathLike) -> float:
        """Return the duration of ``source`` in seconds."""

    @abstractmethod
    def trim(self, source: PathLike, destination: PathLike, start: float, end: float) -> None:
        """Write the ``[start, end)`` interval of ``source`` to ``destination``."""


class FFmpegTranscoder(Transcoder, Trimmer):
    """Runs ffmpeg/ffprobe as subprocesses."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        timeout: Optional[float] = None,
    ):
        """Initialize transcoder.

        Args:
            ffmpeg_path: Path to ffmpeg binary
            ffprobe_path: Path to ffprobe binary
            timeout: Seconds before a single invocation is killed, None to wait forever
        """
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Command builders
    # ------------------------------------------------------------------

    def build_convert_command(
        self,
        source: PathLike,
        destination: PathLike,
        output_format: OutputFormat,
        include_audio: bool = True,
    ) -> list[str]:
        """Build the ffmpeg command for a format conversion.

        GIF ignores ``include_audio``: the container has no audio track.

        Raises:
            UnsupportedFormatError: If ``output_format`` is not a known format
        """
        try:
            output_format = OutputFormat(output_format)
        except ValueError:
            raise UnsupportedFormatError(f"Unsupported format: {output_format}")

        cmd = [self.ffmpeg_path, "-y", "-i", str(source)]

        if output_format is OutputFormat.MP4:
            cmd += ["-c:v", "libx264", "-crf", str(MP4_CRF)]
            cmd += ["-c:a", "aac"] if include_audio else ["-an"]
            cmd += ["-movflags", "+faststart", "-f", "mp4"]
        elif output_format is OutputFormat.WEBM:
            cmd += ["-c:v", "libvpx-vp9"]
            cmd += ["-c:a", "libopus"] if include_audio else ["-an"]
            cmd += ["-f", "webm"]
        else:
            cmd += [
                "-vf", f"fps={GIF_FPS},scale={GIF_WIDTH}:-1:flags=lanczos",
                "-an",
                "-f", "gif",
            ]

        cmd.append(str(destination))
        return cmd

    def build_trim_command(
        self,
        source: PathLike,
        destination: PathLike,
        start: float,
        end: float,
    ) -> list[str]:
        """Build the ffmpeg command for trimming.

        ``-ss`` goes before ``-i`` for fast input seeking; the cut is
        re-encoded so the boundaries land on the requested timestamps rather
        than on the nearest keyframes.
        """
        return [
            self.ffmpeg_path,
            "-y",
            "-ss", f"{start:.3f}",
            "-i", str(source),
            "-t", f"{end - start:.3f}",
            "-c:v", "libx264",
            "-c:a", "aac",
            "-movflags", "+faststart",
            "-f", "mp4",
            str(destination),
        ]

    def build_probe_command(self, source: PathLike) -> list[str]:
        return [
            self.ffprobe_path,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(source),
        ]

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def convert(
        self,
        source: PathLike,
        destination: PathLike,
        output_format: OutputFormat,
        include_audio: bool = True,
    ) -> None:
        cmd = self.build_convert_command(source, destination, output_format, include_audio)
        self._run("convert", cmd)
        self._require_output(destination)

    def trim(self, source: PathLike, destination: PathLike, start: float, end: float) -> None:
        cmd = self.build_trim_command(source, destination, start, end)
        self._run("trim", cmd)
        self._require_output(destination)

    def probe_duration(self, source: PathLike) -> float:
        """Return the container duration reported by ffprobe.

        Raises:
            TranscodeError: If ffprobe fails or reports no usable duration
        """
        stdout = self._run("probe", self.build_probe_command(source))
        raw = stdout.strip().splitlines()[0] if stdout.strip() else ""
        try:
            duration = float(raw)
        except ValueError:
            raise TranscodeError(f"Could not determine video duration (ffprobe returned {raw!r})")
        if not math.isfinite(duration) or duration <= 0:
            raise TranscodeError(f"Could not determine video duration (ffprobe returned {raw!r})")
        return duration

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(self, operation: str, cmd: list[str]) -> str:
        """Run one media tool invocation and return its stdout."""
        logger.debug("Running %s: %s", operation, " ".join(cmd))
        start_time = time.perf_counter()

        with create_span(f"media.{operation}", attributes={"media.tool": cmd[0]}):
            try:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    errors="replace",
                    timeout=self.timeout,
                )
            except (OSError, subprocess.TimeoutExpired) as e:
                MEDIA_OPERATIONS_TOTAL.labels(operation=operation, status="error").inc()
                record_exception(e)
                raise TranscodeError(f"Failed to run {Path(cmd[0]).name}: {e}") from e
            finally:
                MEDIA_OPERATION_DURATION_SECONDS.labels(operation=operation).observe(
                    time.perf_counter() - start_time
                )

            add_span_attributes({"media.returncode": result.returncode})

            if result.returncode != 0:
                MEDIA_OPERATIONS_TOTAL.labels(operation=operation, status="error").inc()
                diagnostics = (result.stderr or "").strip()[-MAX_DIAGNOSTIC_CHARS:]
                error = TranscodeError(
                    f"{Path(cmd[0]).name} {operation} failed with exit code {result.returncode}: "
                    f"{diagnostics.splitlines()[-1] if diagnostics else 'no diagnostics'}",
                    diagnostics=diagnostics,
                )
                record_exception(error)
                raise error

        MEDIA_OPERATIONS_TOTAL.labels(operation=operation, status="success").inc()
        return result.stdout or ""

    def _require_output(self, destination: PathLike) -> None:
        path = Path(destination)
        if not path.is_file() or path.stat().st_size == 0:
            raise TranscodeError(f"Media tool produced no output at {path.name}")
