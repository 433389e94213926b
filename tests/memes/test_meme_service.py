"""Tests for meme uploads and counters."""

import re
from types import SimpleNamespace

import pytest
from hypothesis import given, settings, strategies as st

from memehub.modules.memes.service import (
    InvalidActionError,
    InvalidUploadError,
    MemeNotFoundError,
    MemeService,
    MemeServiceError,
    ServerNotConfiguredError,
    UnauthorizedError,
    build_object_key,
    friendly_storage_error,
    parse_tags,
    sanitize_filename,
)


@pytest.fixture
def service(fake_supabase, memory_storage):
    return MemeService(
        client_factory=lambda: fake_supabase,
        server_client_factory=lambda: fake_supabase,
        storage=memory_storage,
        max_upload_bytes=1024,
    )


def _upload(service, **overrides):
    fields = {
        "data": b"clip-bytes",
        "filename": "my clip.mp4",
        "content_type": "video/mp4",
        "title": "  Cat Jam ",
        "creator_id": "user-1",
        "description": "",
        "tags": '["cats", " music ", ""]',
        "country": "All",
        "language": "English",
    }
    fields.update(overrides)
    return service.upload_meme(**fields)


class TestObjectKeys:
    """Property tests for upload object keys."""

    @given(filename=st.text(max_size=300))
    @settings(max_examples=100)
    def test_sanitized_names_are_safe_and_bounded(self, filename: str) -> None:
        cleaned = sanitize_filename(filename)

        assert len(cleaned) <= 200
        assert re.fullmatch(r"[a-zA-Z0-9._-]*", cleaned)

    def test_key_is_prefixed_with_upload_time(self) -> None:
        assert build_object_key("my clip.mp4", now_ms=1700000000000) == "videos/1700000000000_my_clip.mp4"


class TestUpload:
    """Tests for ``upload_meme``."""

    def test_upload_stores_object_and_inserts_row(self, service, fake_supabase, memory_storage) -> None:
        meme = _upload(service)

        assert meme["title"] == "Cat Jam"
        assert meme["description"] is None
        assert meme["tags"] == ["cats", "music"]
        assert meme["country"] is None
        assert meme["language"] == "English"
        assert meme["views"] == 0 and meme["downloads"] == 0
        [key] = memory_storage.objects
        assert re.fullmatch(r"videos/\d+_my_clip\.mp4", key)
        assert memory_storage.objects[key] == b"clip-bytes"
        assert meme["video_url"].endswith(key)
        assert fake_supabase.tables["memes"] == [meme]

    @pytest.mark.parametrize(
        "overrides",
        [{"data": b""}, {"data": None}, {"title": "   "}, {"title": None}, {"creator_id": ""}],
    )
    def test_missing_fields(self, service, overrides) -> None:
        with pytest.raises(InvalidUploadError, match="Missing required fields"):
            _upload(service, **overrides)

    def test_oversized_file(self, service, memory_storage) -> None:
        with pytest.raises(InvalidUploadError, match=r"File size exceeds .*MB limit"):
            _upload(service, data=b"x" * 2048)
        assert memory_storage.objects == {}

    def test_bad_tags(self, service) -> None:
        with pytest.raises(InvalidUploadError, match="tags"):
            _upload(service, tags='{"not": "a list"}')

    def test_server_client_required(self, fake_supabase, memory_storage) -> None:
        service = MemeService(lambda: fake_supabase, lambda: None, memory_storage)

        with pytest.raises(ServerNotConfiguredError):
            _upload(service)

    def test_storage_failure_is_reported(self, fake_supabase, failing_storage) -> None:
        service = MemeService(lambda: fake_supabase, lambda: fake_supabase, failing_storage)

        with pytest.raises(MemeServiceError, match="Upload failed: Connection to storage failed"):
            _upload(service)
        assert fake_supabase.tables.get("memes", []) == []

    def test_database_failure_is_reported(self, service, fake_supabase) -> None:
        fake_supabase.fail_insert = True

        with pytest.raises(MemeServiceError, match="Database error"):
            _upload(service)


class TestHelpers:
    @pytest.mark.parametrize(
        "raw,expected",
        [(None, []), ("", []), ('["a", "b"]', ["a", "b"]), ('[" a ", "  "]', ["a"])],
    )
    def test_parse_tags(self, raw, expected) -> None:
        assert parse_tags(raw) == expected

    def test_friendly_storage_errors(self) -> None:
        assert "Connection" in friendly_storage_error("TypeError: fetch failed")
        assert "bucket does not exist" in friendly_storage_error("Bucket not found")
        assert "permission" in friendly_storage_error("new row violates policy: Unauthorized")
        assert friendly_storage_error("something else") == "something else"


class TestCounters:
    """Tests for ``increment_counter``."""

    @pytest.fixture(autouse=True)
    def seed(self, fake_supabase) -> None:
        fake_supabase.tables["memes"] = [{"id": "m1", "title": "Cat Jam", "views": 4, "downloads": None}]
        fake_supabase.sessions["good-token"] = SimpleNamespace(id="user-1")

    def test_views_need_no_session(self, service, fake_supabase) -> None:
        assert service.increment_counter("m1", "increment_views") == ("views", 5)
        assert fake_supabase.tables["memes"][0]["views"] == 5

    def test_downloads_need_a_session(self, service) -> None:
        with pytest.raises(UnauthorizedError):
            service.increment_counter("m1", "increment_downloads")
        with pytest.raises(UnauthorizedError):
            service.increment_counter("m1", "increment_downloads", "Bearer stale-token")

    def test_downloads_with_session(self, service, fake_supabase) -> None:
        assert service.increment_counter("m1", "increment_downloads", "Bearer good-token") == ("downloads", 1)
        assert fake_supabase.tables["memes"][0]["downloads"] == 1

    @pytest.mark.parametrize("action", [None, "", "increment_likes"])
    def test_invalid_action(self, service, action) -> None:
        with pytest.raises(InvalidActionError):
            service.increment_counter("m1", action)

    def test_unknown_meme(self, service) -> None:
        with pytest.raises(MemeNotFoundError):
            service.increment_counter("missing", "increment_views")

    def test_update_failure(self, service, fake_supabase) -> None:
        fake_supabase.fail_update = True

        with pytest.raises(MemeServiceError, match="Failed to increment views"):
            service.increment_counter("m1", "increment_views")
