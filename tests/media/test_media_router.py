"""HTTP tests for the trim and download endpoints."""

import re

import pytest

from memehub.main import app
from memehub.modules.media.router import get_download_service, get_trim_service
from memehub.modules.media.service import DownloadService, TrimService
from memehub.modules.media.sources import SampleAssetSource


CLIP = b"\x00\x00\x00\x18ftypmp42 ten second clip"


@pytest.fixture
def work_root(tmp_path):
    root = tmp_path / "work"
    root.mkdir()
    return root


@pytest.fixture
def use_trimmer(work_root):
    def install(tool):
        app.dependency_overrides[get_trim_service] = lambda: TrimService(tool, temp_root=str(work_root))
        return tool

    return install


@pytest.fixture
def use_downloads(tmp_path, memory_storage, media_tool, work_root):
    static_root = tmp_path / "public"
    (static_root / "placeholders").mkdir(parents=True)
    (static_root / "placeholders" / "video1.mp4").write_bytes(CLIP)

    def install(transcoding_enabled=False, transcoder=media_tool):
        app.dependency_overrides[get_download_service] = lambda: DownloadService(
            sources=[SampleAssetSource()],
            storage=memory_storage,
            transcoder=transcoder,
            transcoding_enabled=transcoding_enabled,
            static_root=str(static_root),
            temp_root=str(work_root),
        )

    return install


def _trim(client, start="2", end="5", data=CLIP):
    files = {"file": ("clip.mp4", data, "video/mp4")} if data is not None else None
    form = {}
    if start is not None:
        form["startTime"] = start
    if end is not None:
        form["endTime"] = end
    return client.post("/api/trim-video", data=form, files=files)


class TestTrimEndpoint:
    """Tests for ``POST /api/trim-video``."""

    def test_valid_trim_returns_mp4_attachment(self, api_client, use_trimmer, media_tool, work_root) -> None:
        use_trimmer(media_tool)

        response = _trim(api_client, "2", "5")

        assert response.status_code == 200
        assert response.headers["content-type"] == "video/mp4"
        assert re.fullmatch(
            r'attachment; filename="trimmed_\d{13}\.mp4"', response.headers["content-disposition"]
        )
        assert response.content == b"trimmed 2.0-5.0 of " + CLIP
        assert ("trim", 2.0, 5.0) in media_tool.calls
        assert list(work_root.iterdir()) == []

    def test_inverted_interval_is_rejected_and_cleaned_up(
        self, api_client, use_trimmer, media_tool, work_root
    ) -> None:
        use_trimmer(media_tool)

        response = _trim(api_client, "5", "3")

        assert response.status_code == 400
        assert "start < end" in response.json()["error"]
        assert not any(call[0] == "trim" for call in media_tool.calls)
        assert media_tool.seen_dirs and not media_tool.seen_dirs[0].exists()
        assert list(work_root.iterdir()) == []

    def test_end_beyond_duration_is_rejected(self, api_client, use_trimmer, make_media_tool) -> None:
        use_trimmer(make_media_tool(duration=4.0))

        response = _trim(api_client, "1", "6")

        assert response.status_code == 400

    def test_missing_file(self, api_client, use_trimmer, media_tool) -> None:
        use_trimmer(media_tool)

        response = _trim(api_client, data=None)

        assert response.status_code == 400
        assert response.json() == {"error": "No file provided"}

    @pytest.mark.parametrize("start,end", [(None, "5"), ("2", None)])
    def test_missing_times(self, api_client, use_trimmer, media_tool, start, end) -> None:
        use_trimmer(media_tool)

        response = _trim(api_client, start, end)

        assert response.status_code == 400
        assert response.json() == {"error": "Start and end times required"}

    def test_non_numeric_time(self, api_client, use_trimmer, media_tool) -> None:
        use_trimmer(media_tool)

        response = _trim(api_client, "two", "5")

        assert response.status_code == 400
        assert "must be a number" in response.json()["error"]

    def test_tool_failure_is_a_server_error(
        self, api_client, use_trimmer, failing_media_tool, work_root
    ) -> None:
        use_trimmer(failing_media_tool)

        response = _trim(api_client, "2", "5")

        assert response.status_code == 500
        assert response.json()["error"].startswith("Failed to trim video: ")
        assert list(work_root.iterdir()) == []


class TestDownloadEndpoint:
    """Tests for ``POST /api/download``."""

    def test_flag_off_returns_stored_bytes(self, api_client, use_downloads, media_tool) -> None:
        use_downloads(transcoding_enabled=False)

        response = api_client.post(
            "/api/download", json={"memeId": "test-1", "format": "MP4", "audioType": "with"}
        )

        assert response.status_code == 200
        assert response.content == CLIP
        assert response.headers["content-type"] == "video/mp4"
        assert response.headers["content-length"] == str(len(CLIP))
        assert (
            response.headers["content-disposition"]
            == 'attachment; filename="dj-chicken-beaten-to-stupor-.mp4"'
        )
        assert media_tool.calls == []

    def test_gif_is_labelled_gif_without_transcoding(self, api_client, use_downloads) -> None:
        use_downloads(transcoding_enabled=False)

        response = api_client.post(
            "/api/download", json={"memeId": "test-1", "format": "GIF", "audioType": "with"}
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/gif"
        assert response.content == CLIP

    def test_flag_on_converts(self, api_client, use_downloads, media_tool, work_root) -> None:
        use_downloads(transcoding_enabled=True)

        response = api_client.post(
            "/api/download", json={"memeId": "test-2", "format": "webm", "audioType": "no"}
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "video/webm"
        assert response.content == b"WEBM:mute:" + CLIP
        assert list(work_root.iterdir()) == []

    def test_failed_conversion_falls_back_to_mp4(
        self, api_client, use_downloads, failing_media_tool
    ) -> None:
        use_downloads(transcoding_enabled=True, transcoder=failing_media_tool)

        response = api_client.post("/api/download", json={"memeId": "test-1", "format": "GIF"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "video/mp4"
        assert response.content == CLIP

    def test_defaults_to_mp4_with_audio(self, api_client, use_downloads) -> None:
        use_downloads()

        response = api_client.post("/api/download", json={"memeId": "test-1"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "video/mp4"

    def test_unknown_meme(self, api_client, use_downloads) -> None:
        use_downloads()

        response = api_client.post("/api/download", json={"memeId": "nope", "format": "MP4"})

        assert response.status_code == 404
        assert response.json() == {"error": "Meme not found"}

    def test_missing_meme_id(self, api_client, use_downloads) -> None:
        use_downloads()

        response = api_client.post("/api/download", json={"format": "MP4"})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing required parameters"}

    @pytest.mark.parametrize(
        "body",
        [
            {"memeId": "test-1", "format": "AVI"},
            {"memeId": "test-1", "format": "MP4", "audioType": "maybe"},
        ],
    )
    def test_invalid_options_are_rejected(self, api_client, use_downloads, body) -> None:
        use_downloads()

        response = api_client.post("/api/download", json=body)

        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request")
