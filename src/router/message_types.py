"""
Internal message types for router communication.

Single responsibility, type-safe models.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class RequestType(str, Enum):
    """Types of requests the router can handle."""

    CHAT = "chat"  # Advisor question, streamed reply
    CHAT_HISTORY = "chat_history"  # Current conversation
    CHAT_CLEAR = "chat_clear"  # Forget the conversation
    CATALOG = "catalog"  # Courses grouped by faculty
    LESSON = "lesson"  # Streamed lecture synthesis
    SLIDES = "slides"  # Structured slide deck
    LAB_REPORT = "lab_report"
    THESIS = "thesis"
    MEDIA = "media"  # Media lab request for one tab
    STUDIO_UPLOAD = "studio_upload"
    STUDIO_SELECT = "studio_select"
    STUDIO_RUN = "studio_run"  # Batch edit of every studio asset
    STUDIO_CLEAR = "studio_clear"
    CANCEL = "cancel"  # Cancel another in-flight request


class RouterRequest(BaseModel):
    """Internal request format for router processing."""

    request_id: str
    request_type: RequestType
    payload: Dict[str, Any] = Field(default_factory=dict)
    connection_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
