"""Pydantic schemas for the memes endpoints."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class MemeUploadResponse(BaseModel):
    """Response of a successful upload."""

    message: str = "Meme uploaded successfully"
    meme: dict[str, Any]


class CounterUpdateRequest(BaseModel):
    """Body of ``PATCH /memes/{meme_id}``."""

    action: Optional[str] = Field(
        None,
        description="increment_views or increment_downloads",
    )


class CounterUpdateResponse(BaseModel):
    """New counter value after an increment."""

    success: Literal[True] = True
    views: Optional[int] = None
    downloads: Optional[int] = None
