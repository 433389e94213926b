"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
No sensitive values should be hardcoded here.
"""

from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "MemeHub Media API"
    VERSION: str = "0.1.0"
    API_PREFIX: str = "/api"
    DEBUG: bool = False
    LOG_JSON: bool = True

    # Supabase (database, auth and object storage)
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""
    MEMES_TABLE: str = "memes"

    # CORS
    CORS_ORIGINS: list[str] = []

    # Storage Configuration
    # STORAGE_BACKEND: supabase, s3, minio, local
    STORAGE_BACKEND: str = "supabase"
    STORAGE_BUCKET: str = "memes"
    # Absolute video URLs containing this marker point into the bucket
    STORAGE_URL_MARKER: str = "supabase.co"

    # Local Storage (when STORAGE_BACKEND=local)
    LOCAL_STORAGE_PATH: str = "./storage"

    # S3/MinIO/Compatible Storage (when STORAGE_BACKEND=s3 or minio)
    STORAGE_REGION: str = ""
    STORAGE_ACCESS_KEY: str = ""
    STORAGE_SECRET_KEY: str = ""
    STORAGE_ENDPOINT_URL: Optional[str] = None  # Required for MinIO
    STORAGE_USE_SSL: bool = True

    # Root-relative video URLs ("/placeholders/video1.mp4") resolve here
    STATIC_ROOT: str = "./public"

    # Media tooling
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    # Capability flag: transcoding on download only runs when ffmpeg is
    # installed in the deployment.
    FFMPEG_AVAILABLE: bool = False
    TEMP_DIR: Optional[str] = None

    # Uploads
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # Tracing
    OTLP_ENDPOINT: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
