"""
Media handling for portal uploads.

Decodes browser data URLs and validates size and format.
- Single responsibility: media validation only
"""

from typing import Iterable, Optional, Tuple

from common.entities import MediaPayload
from common.logging import get_logger

logger = get_logger(__name__)


class MediaHandler:
    """Validates uploaded media before it reaches a controller."""

    def __init__(self, max_file_size: int = 20 * 1024 * 1024):  # 20MB default
        self.max_file_size = max_file_size
        self.supported_types = {
            "image": {"image/png", "image/jpeg", "image/webp", "image/gif", "image/heic", "image/heif"},
            "audio": {
                "audio/wav",
                "audio/x-wav",
                "audio/mpeg",
                "audio/mp3",
                "audio/ogg",
                "audio/webm",
                "audio/aac",
                "audio/flac",
                "audio/mp4",
            },
            "video": {"video/mp4", "video/webm", "video/quicktime", "video/mpeg"},
        }

    def validate_media_upload(
        self, payload: MediaPayload, families: Iterable[str] = ("image", "audio", "video")
    ) -> Tuple[bool, Optional[str]]:
        """
        Validate an uploaded payload.

        Returns:
            (is_valid, error_message)
        """
        if not payload.data:
            return False, "Upload is empty"

        if len(payload.data) > self.max_file_size:
            return False, f"File size {len(payload.data)} exceeds limit {self.max_file_size}"

        if not self._is_supported_media_type(payload.mime_type, families):
            return False, f"Unsupported media type: {payload.mime_type}"

        logger.info(
            event="media_validated",
            message="Media upload validated successfully",
            content_type=payload.mime_type,
            size=len(payload.data),
        )
        return True, None

    def decode_upload(
        self, data_url: str, families: Iterable[str] = ("image", "audio", "video")
    ) -> MediaPayload:
        """
        Decode and validate a ``data:`` URL.

        Raises:
            ValueError: when the URL is malformed or the media is rejected
        """
        if not isinstance(data_url, str):
            raise ValueError("Upload must be a data URL string")

        families = tuple(families)
        payload = MediaPayload.from_data_url(data_url)
        is_valid, error = self.validate_media_upload(payload, families)
        if not is_valid:
            logger.warning(
                event="media_rejected",
                content_type=payload.mime_type,
                size=len(payload.data),
                reason=error,
            )
            raise ValueError(error)
        return payload

    def _is_supported_media_type(self, content_type: str, families: Iterable[str]) -> bool:
        """Check if the content type is supported for the given families."""
        base_type = content_type.split(";", 1)[0].strip().lower()
        return any(base_type in self.supported_types.get(family, set()) for family in families)

