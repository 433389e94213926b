"""Shared fixtures: in-memory stand-ins for Supabase, storage and ffmpeg."""

import shutil
import subprocess
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from memehub.core.storage import StorageBackend, StorageError, StorageResult
from memehub.modules.media.errors import TranscodeError
from memehub.modules.media.ffmpeg import Transcoder, Trimmer
from memehub.modules.media.models import OutputFormat


# ============================================
# Supabase
# ============================================

class FakeQuery:
    """Chainable stand-in for a postgrest query builder."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.filters: list[tuple[str, Any]] = []
        self.columns = "*"
        self.operation = "select"
        self.payload: Any = None
        self.row_limit: Optional[int] = None

    def select(self, columns: str = "*"):
        self.operation = "select"
        self.columns = columns
        return self

    def insert(self, payload):
        self.operation = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.operation = "update"
        self.payload = payload
        return self

    def eq(self, column: str, value: Any):
        self.filters.append((column, value))
        return self

    def limit(self, n: int):
        self.row_limit = n
        return self

    def _matches(self, row: dict) -> bool:
        return all(str(row.get(col)) == str(val) for col, val in self.filters)

    def execute(self):
        if self.table in self.db.failing_tables:
            raise RuntimeError(f"relation {self.table} unavailable")

        rows = self.db.tables.setdefault(self.table, [])
        if self.operation == "insert":
            if self.db.fail_insert:
                raise RuntimeError("insert rejected")
            new_rows = self.payload if isinstance(self.payload, list) else [self.payload]
            created = []
            for row in new_rows:
                stored = {"id": f"meme-{len(rows) + 1}", **row}
                rows.append(stored)
                created.append(stored)
            return SimpleNamespace(data=created)

        matched = [r for r in rows if self._matches(r)]
        if self.operation == "update":
            if self.db.fail_update:
                raise RuntimeError("update rejected")
            for row in matched:
                row.update(self.payload)
            return SimpleNamespace(data=matched)

        if self.row_limit is not None:
            matched = matched[: self.row_limit]
        if self.columns != "*":
            keep = [c.strip() for c in self.columns.split(",")]
            matched = [{k: r.get(k) for k in keep} for r in matched]
        return SimpleNamespace(data=matched)


class FakeBucket:
    def __init__(self, db: "FakeSupabase", name: str):
        self.db = db
        self.name = name

    def upload(self, path: str, file: bytes, file_options: Optional[dict] = None):
        if self.db.fail_storage:
            raise RuntimeError(self.db.fail_storage)
        self.db.objects[(self.name, path)] = (bytes(file), dict(file_options or {}))
        return SimpleNamespace(path=path)

    def download(self, path: str) -> bytes:
        try:
            return self.db.objects[(self.name, path)][0]
        except KeyError:
            raise RuntimeError(f"Object not found: {path}")

    def get_public_url(self, path: str) -> str:
        return f"https://demo.supabase.co/storage/v1/object/public/{self.name}/{path}"


class FakeAuth:
    def __init__(self, db: "FakeSupabase"):
        self.db = db

    def get_user(self, token: str):
        user = self.db.sessions.get(token)
        if user is None:
            raise RuntimeError("invalid JWT")
        return SimpleNamespace(user=user)


class FakeSupabase:
    """Enough of the supabase-py client surface for the services under test."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.objects: dict[tuple[str, str], tuple[bytes, dict]] = {}
        self.sessions: dict[str, Any] = {}
        self.failing_tables: set[str] = set()
        self.fail_insert = False
        self.fail_update = False
        self.fail_storage: Optional[str] = None
        self.auth = FakeAuth(self)
        self.storage = SimpleNamespace(from_=lambda bucket: FakeBucket(self, bucket))

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


# ============================================
# Storage
# ============================================

class MemoryStorage(StorageBackend):
    """Dict-backed storage backend."""

    def __init__(self, objects: Optional[dict[str, bytes]] = None, fail: bool = False):
        self.objects = dict(objects or {})
        self.fail = fail

    def upload_bytes(self, data, key, content_type="application/octet-stream", upsert=False):
        if self.fail:
            return StorageResult(success=False, key=key, url="", error_message="fetch failed")
        if key in self.objects and not upsert:
            return StorageResult(success=False, key=key, url="", error_message="The resource already exists")
        self.objects[key] = data
        return StorageResult(success=True, key=key, url=self.get_public_url(key), file_size=len(data))

    def download_bytes(self, key):
        if self.fail or key not in self.objects:
            raise StorageError(f"Failed to download from storage: {key}")
        return self.objects[key]

    def get_public_url(self, key):
        return f"https://demo.supabase.co/storage/v1/object/public/memes/{key}"


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def failing_storage() -> MemoryStorage:
    return MemoryStorage(fail=True)


# ============================================
# Media tools
# ============================================

class FakeMediaTool(Transcoder, Trimmer):
    """Records calls and writes predictable output instead of running ffmpeg."""

    def __init__(self, duration: float = 10.0, fail_with: Optional[Exception] = None):
        self.duration = duration
        self.fail_with = fail_with
        self.calls: list[tuple] = []
        self.seen_dirs: list[Path] = []

    def probe_duration(self, source) -> float:
        self.calls.append(("probe", str(source)))
        self.seen_dirs.append(Path(source).parent)
        return self.duration

    def trim(self, source, destination, start, end) -> None:
        self.calls.append(("trim", start, end))
        if self.fail_with is not None:
            raise self.fail_with
        Path(destination).write_bytes(
            f"trimmed {start:.1f}-{end:.1f} of ".encode() + Path(source).read_bytes()
        )

    def convert(self, source, destination, output_format, include_audio=True) -> None:
        self.calls.append(("convert", OutputFormat(output_format), include_audio))
        self.seen_dirs.append(Path(source).parent)
        if self.fail_with is not None:
            raise self.fail_with
        Path(destination).write_bytes(
            f"{OutputFormat(output_format).value}:{'audio' if include_audio else 'mute'}:".encode()
            + Path(source).read_bytes()
        )


@pytest.fixture
def media_tool() -> FakeMediaTool:
    return FakeMediaTool()


@pytest.fixture
def make_media_tool():
    """The fake tool class, for tests that need a custom duration or failure."""
    return FakeMediaTool


@pytest.fixture
def failing_media_tool() -> FakeMediaTool:
    return FakeMediaTool(fail_with=TranscodeError("ffmpeg exited with 1", diagnostics="Unknown encoder"))


# ============================================
# Application
# ============================================

@pytest.fixture
def api_client():
    """Test client with dependency overrides reset afterwards."""
    from memehub.main import app

    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


# ============================================
# Real ffmpeg
# ============================================

HAS_FFMPEG = shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def make_test_clip(path: Path, seconds: float, with_audio: bool = True) -> Path:
    """Render a synthetic clip with ffmpeg's test sources."""
    cmd = [
        "ffmpeg", "-y", "-v", "error",
        "-f", "lavfi", "-i", f"testsrc=duration={seconds}:size=320x240:rate=25",
    ]
    if with_audio:
        cmd += ["-f", "lavfi", "-i", f"sine=frequency=440:duration={seconds}"]
    cmd += ["-c:v", "libx264", "-pix_fmt", "yuv420p"]
    if with_audio:
        cmd += ["-c:a", "aac", "-shortest"]
    cmd.append(str(path))
    subprocess.run(cmd, check=True, capture_output=True)
    return path


@pytest.fixture
def clip_factory(tmp_path_factory):
    """Build synthetic clips, skipping when ffmpeg is not installed."""
    if not HAS_FFMPEG:
        pytest.skip("ffmpeg/ffprobe not installed")
    directory = tmp_path_factory.mktemp("clips")

    def build(name: str, seconds: float, with_audio: bool = True) -> Path:
        return make_test_clip(directory / name, seconds, with_audio)

    return build


@pytest.fixture
def ten_second_clip(clip_factory) -> Path:
    return clip_factory("ten.mp4", 10)
