"""Media API router.

``POST /trim-video`` cuts an upload before it is published and
``POST /download`` serves a stored meme in the requested format.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status
from starlette.concurrency import run_in_threadpool

from memehub.core.config import settings
from memehub.core.storage import get_storage
from memehub.core.supabase import get_supabase_client
from memehub.modules.media.errors import MediaPipelineError, NotFoundError, ValidationError
from memehub.modules.media.ffmpeg import FFmpegTranscoder
from memehub.modules.media.models import DownloadRequest
from memehub.modules.media.schemas import DownloadRequestBody, ErrorResponse
from memehub.modules.media.service import DownloadService, TrimService
from memehub.modules.media.sources import SampleAssetSource, SupabaseAssetSource

logger = logging.getLogger(__name__)

router = APIRouter(tags=["media"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def get_transcoder() -> FFmpegTranscoder:
    """Dependency to get the ffmpeg transcoder."""
    return FFmpegTranscoder(
        ffmpeg_path=settings.FFMPEG_PATH,
        ffprobe_path=settings.FFPROBE_PATH,
    )


def get_trim_service(transcoder: FFmpegTranscoder = Depends(get_transcoder)) -> TrimService:
    """Dependency to get the trim service."""
    return TrimService(transcoder, temp_root=settings.TEMP_DIR)


def get_download_service(transcoder: FFmpegTranscoder = Depends(get_transcoder)) -> DownloadService:
    """Dependency to get the download service.

    The capability flag is read here so each request sees current settings.
    """
    return DownloadService(
        sources=[
            SupabaseAssetSource(get_supabase_client, table=settings.MEMES_TABLE),
            SampleAssetSource(),
        ],
        storage=get_storage(),
        transcoder=transcoder,
        transcoding_enabled=settings.FFMPEG_AVAILABLE,
        static_root=settings.STATIC_ROOT,
        bucket=settings.STORAGE_BUCKET,
        url_marker=settings.STORAGE_URL_MARKER,
        temp_root=settings.TEMP_DIR,
    )


def _attachment(download_name: str) -> str:
    return f'attachment; filename="{download_name}"'


@router.post(
    "/trim-video",
    response_class=Response,
    responses={200: {"content": {"video/mp4": {}}}, **ERROR_RESPONSES},
    summary="Trim a video clip",
)
async def trim_video(
    file: Optional[UploadFile] = File(None),
    start_time: Optional[str] = Form(None, alias="startTime"),
    end_time: Optional[str] = Form(None, alias="endTime"),
    service: TrimService = Depends(get_trim_service),
):
    """Cut the uploaded clip to ``[startTime, endTime)`` seconds.

    Nothing is stored: the trimmed MP4 is the response body.
    """
    data = await file.read() if file is not None else None

    try:
        result = await run_in_threadpool(service.trim, data, start_time, end_time)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except (MediaPipelineError, OSError) as e:
        logger.error("Video trim error: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to trim video: {e}",
        )

    return Response(
        content=result.content,
        media_type="video/mp4",
        headers={"Content-Disposition": _attachment(result.download_name)},
    )


@router.post(
    "/download",
    response_class=Response,
    responses={
        200: {"content": {"video/mp4": {}, "video/webm": {}, "image/gif": {}}},
        **ERROR_RESPONSES,
    },
    summary="Download a meme",
)
async def download_meme(
    body: DownloadRequestBody,
    service: DownloadService = Depends(get_download_service),
):
    """Return a stored meme, re-encoded when possible.

    Conversion only runs where ffmpeg is available; otherwise, or when
    conversion fails, the stored video is returned unchanged.
    """
    if not body.meme_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required parameters",
        )

    logger.info(
        "Download request",
        extra={
            "meme_id": body.meme_id,
            "format": body.format.value,
            "audio_type": body.audio_type.value,
        },
    )
    request = DownloadRequest(asset_id=body.meme_id, format=body.format, audio=body.audio_type)

    try:
        result = await run_in_threadpool(service.download, request)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except MediaPipelineError as e:
        logger.error("Download error: %s", e, exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return Response(
        content=result.content,
        media_type=result.content_type,
        headers={
            "Content-Disposition": _attachment(result.download_name),
            "Content-Length": str(len(result.content)),
        },
    )
