"""Meme service for publishing clips and updating counters.

Uploads go to object storage and create a ``memes`` row; counters back the
view/download figures shown on each meme card.
"""

import json
import logging
import re
import time
from typing import Any, Callable, Optional

from memehub.core.metrics import BAAS_REQUESTS_TOTAL
from memehub.core.storage import StorageBackend

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], Optional[Any]]

MAX_FILENAME_LENGTH = 200
DEFAULT_VIDEO_CONTENT_TYPE = "video/mp4"

COUNTER_FIELDS = {
    "increment_views": "views",
    "increment_downloads": "downloads",
}

_UNSAFE_FILENAME_RE = re.compile(r"[^a-zA-Z0-9._-]")


class MemeServiceError(Exception):
    """Base exception for meme service errors."""

    pass


class InvalidUploadError(MemeServiceError):
    """Raised when an upload request is missing fields or too large."""

    pass


class InvalidActionError(MemeServiceError):
    """Raised when a counter request names an unknown action."""

    pass


class UnauthorizedError(MemeServiceError):
    """Raised when a request needs a valid user session and has none."""

    pass


class MemeNotFoundError(MemeServiceError):
    """Raised when a meme row does not exist."""

    pass


class ServerNotConfiguredError(MemeServiceError):
    """Raised when the service-role Supabase client is unavailable."""

    pass


def sanitize_filename(filename: str) -> str:
    """Replace characters outside ``[a-zA-Z0-9._-]`` and cap the length."""
    return _UNSAFE_FILENAME_RE.sub("_", filename)[:MAX_FILENAME_LENGTH]


def build_object_key(filename: str, now_ms: Optional[int] = None) -> str:
    """Storage key for a new upload, prefixed with the upload time."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"videos/{now_ms}_{sanitize_filename(filename or 'video.mp4')}"


def parse_tags(raw: Optional[str]) -> list[str]:
    """Parse the JSON-encoded tag list sent by the upload form.

    Raises:
        InvalidUploadError: If the value is not a JSON array of strings
    """
    if not raw:
        return []
    try:
        tags = json.loads(raw)
    except json.JSONDecodeError:
        raise InvalidUploadError("tags must be a JSON array of strings")
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        raise InvalidUploadError("tags must be a JSON array of strings")
    return [t.strip() for t in tags if t.strip()]


def friendly_storage_error(message: str) -> str:
    """Translate raw storage errors into something a user can act on."""
    lowered = message.lower()
    if "econnreset" in lowered or "fetch failed" in lowered or "connection" in lowered:
        return "Connection to storage failed. Please try again or contact support."
    if "not found" in lowered:
        return 'The "memes" storage bucket does not exist. Please contact an administrator.'
    if "unauthorized" in lowered or "permission" in lowered:
        return "You don't have permission to upload. Make sure you're signed in."
    return message


def _optional_filter(value: Optional[str]) -> Optional[str]:
    """Country/language pickers send "All" for no selection."""
    if not value or value == "All":
        return None
    return value


class MemeService:
    """Service for meme uploads and counters."""

    def __init__(
        self,
        client_factory: ClientFactory,
        server_client_factory: ClientFactory,
        storage: StorageBackend,
        table: str = "memes",
        max_upload_bytes: int = 10 * 1024 * 1024,
    ):
        self._client_factory = client_factory
        self._server_client_factory = server_client_factory
        self.storage = storage
        self.table = table
        self.max_upload_bytes = max_upload_bytes

    def upload_meme(
        self,
        *,
        data: Optional[bytes],
        filename: str,
        content_type: Optional[str],
        title: Optional[str],
        creator_id: Optional[str],
        description: Optional[str] = None,
        tags: Optional[str] = None,
        country: Optional[str] = None,
        language: Optional[str] = None,
    ) -> dict[str, Any]:
        """Store a clip and create its ``memes`` row.

        Returns:
            The inserted row

        Raises:
            InvalidUploadError: Missing fields, bad tags or oversized file
            ServerNotConfiguredError: No service-role client
            MemeServiceError: Storage or database failure
        """
        if not data or not title or not title.strip() or not creator_id:
            raise InvalidUploadError("Missing required fields (file, title, creator_id)")

        server = self._server_client_factory()
        if server is None:
            raise ServerNotConfiguredError("Server not configured: missing service role key")

        if len(data) > self.max_upload_bytes:
            limit_mb = self.max_upload_bytes / 1024 / 1024
            raise InvalidUploadError(
                f"File size exceeds {limit_mb:g}MB limit. "
                f"Your file is {len(data) / 1024 / 1024:.2f}MB"
            )

        tag_list = parse_tags(tags)
        key = build_object_key(filename)
        logger.info("Uploading to storage", extra={"object_key": key, "size_bytes": len(data)})

        stored = self.storage.upload_bytes(
            data,
            key,
            content_type=content_type or DEFAULT_VIDEO_CONTENT_TYPE,
            upsert=False,
        )
        if not stored.success:
            logger.error("Storage upload error: %s", stored.error_message)
            raise MemeServiceError(
                f"Upload failed: {friendly_storage_error(stored.error_message or 'unknown error')}"
            )

        row = {
            "title": title.strip(),
            "description": description.strip() if description and description.strip() else None,
            "video_url": stored.url,
            "tags": tag_list,
            "country": _optional_filter(country),
            "language": _optional_filter(language),
            "creator_id": creator_id,
            "views": 0,
            "downloads": 0,
        }

        try:
            response = server.table(self.table).insert(row).execute()
        except Exception as e:
            BAAS_REQUESTS_TOTAL.labels(service="database", operation="insert", status="error").inc()
            logger.error("Database insert error: %s", e)
            raise MemeServiceError(f"Database error: {e}")

        BAAS_REQUESTS_TOTAL.labels(service="database", operation="insert", status="ok").inc()
        created = (response.data or [row])[0]
        logger.info("Meme record created: %s", created.get("id"))
        return created

    def authenticate(self, authorization: Optional[str]) -> Any:
        """Verify a ``Bearer`` token with Supabase Auth and return the user.

        Raises:
            UnauthorizedError: Missing header or invalid session
        """
        if not authorization:
            raise UnauthorizedError("Unauthorized. User session required.")

        token = authorization.removeprefix("Bearer ").strip()
        client = self._client_factory()
        if client is None or not token:
            raise UnauthorizedError("Unauthorized. Invalid session.")

        try:
            response = client.auth.get_user(token)
        except Exception as e:
            BAAS_REQUESTS_TOTAL.labels(service="auth", operation="get_user", status="error").inc()
            logger.info("Session verification failed: %s", e)
            raise UnauthorizedError("Unauthorized. Invalid session.")

        user = getattr(response, "user", None) if response is not None else None
        if user is None:
            raise UnauthorizedError("Unauthorized. Invalid session.")
        BAAS_REQUESTS_TOTAL.labels(service="auth", operation="get_user", status="ok").inc()
        return user

    def increment_counter(
        self,
        meme_id: str,
        action: Optional[str],
        authorization: Optional[str] = None,
    ) -> tuple[str, int]:
        """Increment a meme's view or download counter.

        Views are anonymous; downloads need a signed-in user.

        Returns:
            ``(field, new_value)``, e.g. ``("views", 42)``

        Raises:
            InvalidActionError: Missing or unknown action
            UnauthorizedError: Download counted without a valid session
            MemeNotFoundError: No such meme
            MemeServiceError: Update failed
        """
        if not meme_id or not action:
            raise InvalidActionError("Invalid request. memeId and action are required.")
        field = COUNTER_FIELDS.get(action)
        if field is None:
            raise InvalidActionError("Invalid action")

        if field == "downloads":
            self.authenticate(authorization)

        client = self._client_factory()
        if client is None:
            raise ServerNotConfiguredError("Supabase is not configured")

        try:
            response = (
                client.table(self.table)
                .select(field)
                .eq("id", meme_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("Error fetching meme %s: %s", meme_id, e)
            raise MemeNotFoundError("Meme not found")
        rows = response.data or []
        if not rows:
            raise MemeNotFoundError("Meme not found")

        new_value = (rows[0].get(field) or 0) + 1
        try:
            client.table(self.table).update({field: new_value}).eq("id", meme_id).execute()
        except Exception as e:
            BAAS_REQUESTS_TOTAL.labels(service="database", operation="update", status="error").inc()
            logger.error("Error updating %s for %s: %s", field, meme_id, e)
            raise MemeServiceError(f"Failed to increment {field}")

        BAAS_REQUESTS_TOTAL.labels(service="database", operation="update", status="ok").inc()
        return field, new_value
