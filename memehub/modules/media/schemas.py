"""Pydantic schemas for the media endpoints."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from memehub.modules.media.models import AudioType, OutputFormat


class DownloadRequestBody(BaseModel):
    """JSON body of ``POST /download``."""

    meme_id: Optional[str] = Field(None, alias="memeId", description="Meme to download")
    format: OutputFormat = Field(default=OutputFormat.MP4, description="MP4, WEBM or GIF")
    audio_type: AudioType = Field(
        default=AudioType.WITH,
        alias="audioType",
        description="'with' keeps the audio track, 'no' strips it",
    )

    class Config:
        populate_by_name = True

    @field_validator("format", mode="before")
    @classmethod
    def normalize_format(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("audio_type", mode="before")
    @classmethod
    def normalize_audio_type(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class ErrorResponse(BaseModel):
    """Error envelope returned by every endpoint."""

    error: str
