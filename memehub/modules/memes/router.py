"""Memes API router.

Implements the upload endpoint that publishes a clip and the counter
endpoint used by meme cards.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, UploadFile, status
from starlette.concurrency import run_in_threadpool

from memehub.core.config import settings
from memehub.core.storage import get_storage
from memehub.core.supabase import get_supabase_client, get_supabase_server_client
from memehub.modules.media.schemas import ErrorResponse
from memehub.modules.memes.schemas import (
    CounterUpdateRequest,
    CounterUpdateResponse,
    MemeUploadResponse,
)
from memehub.modules.memes.service import (
    InvalidActionError,
    InvalidUploadError,
    MemeNotFoundError,
    MemeService,
    MemeServiceError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["memes"])


def get_service() -> MemeService:
    """Dependency to get meme service."""
    return MemeService(
        client_factory=get_supabase_client,
        server_client_factory=get_supabase_server_client,
        storage=get_storage(),
        table=settings.MEMES_TABLE,
        max_upload_bytes=settings.MAX_UPLOAD_BYTES,
    )


@router.post(
    "/upload",
    response_model=MemeUploadResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Publish a meme",
)
async def upload_meme(
    file: Optional[UploadFile] = File(None),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    country: Optional[str] = Form(None),
    language: Optional[str] = Form(None),
    creator_id: Optional[str] = Form(None),
    service: MemeService = Depends(get_service),
):
    """Store the clip in the memes bucket and create its database row."""
    data = await file.read() if file is not None else None
    logger.info(
        "Upload request received",
        extra={"title": title, "creator_id": creator_id, "size_bytes": len(data) if data else 0},
    )

    try:
        meme = await run_in_threadpool(
            lambda: service.upload_meme(
                data=data,
                filename=file.filename if file is not None else "",
                content_type=file.content_type if file is not None else None,
                title=title,
                creator_id=creator_id,
                description=description,
                tags=tags,
                country=country,
                language=language,
            )
        )
    except InvalidUploadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except MemeServiceError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return MemeUploadResponse(meme=meme)


@router.patch(
    "/memes/{meme_id}",
    response_model=CounterUpdateResponse,
    response_model_exclude_none=True,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Increment a meme counter",
)
async def update_counter(
    meme_id: str,
    body: CounterUpdateRequest,
    authorization: Optional[str] = Header(None),
    service: MemeService = Depends(get_service),
):
    """Increment views (anonymous) or downloads (signed-in users only)."""
    try:
        field, value = await run_in_threadpool(
            service.increment_counter, meme_id, body.action, authorization
        )
    except InvalidActionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except UnauthorizedError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    except MemeNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except MemeServiceError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return CounterUpdateResponse(**{field: value})
