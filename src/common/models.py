"""
Wire models for portal communication.

Used for WebSocket communication between the browser and the portal, and for
internal communication between the router and the connection layer.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from common.entities import MediaPayload


class ChunkType(str, Enum):
    """Type of data chunk being streamed."""

    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    STATE = "state"
    ERROR = "error"
    METADATA = "metadata"


class Chunk(BaseModel):
    """
    Data chunk streamed to the browser.

    Binary payloads travel as data URLs so every chunk stays plain JSON.
    """

    type: ChunkType
    data: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    sequence_id: Optional[str] = None


def media_chunk(payload: MediaPayload, **metadata: Any) -> Chunk:
    """Wrap a binary payload as a chunk typed after its MIME family."""
    family = payload.mime_type.split("/", 1)[0]
    chunk_type = {
        "image": ChunkType.IMAGE,
        "audio": ChunkType.AUDIO,
        "video": ChunkType.VIDEO,
    }.get(family, ChunkType.METADATA)
    return Chunk(
        type=chunk_type,
        data=payload.to_data_url(),
        metadata={"mime_type": payload.mime_type, "size": len(payload.data), **metadata},
    )


class WebSocketMessage(BaseModel):
    """
    WebSocket message format for browser-portal communication.
    """

    action: str = Field(
        ...,
        description=(
            "Action type: 'chat', 'chat_history', 'chat_clear', 'catalog', 'lesson', 'slides', "
            "'lab_report', 'thesis', 'media', 'studio_upload', 'studio_select', 'studio_run', "
            "'studio_clear', 'cancel'"
        ),
    )
    payload: Dict[str, Any] = Field(default_factory=dict)
    request_id: str = Field(..., description="Unique request identifier")


class WebSocketResponse(BaseModel):
    """
    WebSocket response format from portal to browser.
    """

    request_id: str
    status: str = Field(..., description="Status: 'processing', 'chunk', 'complete', 'cancelled', 'error'")
    chunk: Optional[Chunk] = None
    error: Optional[str] = None
