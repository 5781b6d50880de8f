"""
Domain entities shared by the prompt builder, gateway and controllers.

Pydantic models for data validation; type hints throughout.
"""

import base64
import binascii
import re
import uuid
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

_DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?:;[^,]*)?;base64,(?P<data>.*)$", re.S)


class MediaPayload(BaseModel):
    """Binary payload with its MIME type."""

    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    data: bytes
    mime_type: str

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"

    @classmethod
    def from_data_url(cls, data_url: str) -> "MediaPayload":
        """Parse a browser ``data:<mime>;base64,<payload>`` URL."""
        match = _DATA_URL_PATTERN.match(data_url.strip())
        if not match:
            raise ValueError("Not a base64 data URL")
        try:
            data = base64.b64decode(match.group("data"), validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 payload: {e}") from e
        return cls(data=data, mime_type=match.group("mime"))


class MediaReference(BaseModel):
    """A remote, fetchable result such as a finished video."""

    uri: str
    mime_type: str = "video/mp4"


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class AssetStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


def new_asset_id() -> str:
    return uuid.uuid4().hex[:9]


class Asset(BaseModel):
    """A user-supplied image in the studio batch."""

    id: str = Field(default_factory=new_asset_id)
    original_data: MediaPayload
    edited_data: Optional[MediaPayload] = None
    status: AssetStatus = AssetStatus.IDLE
    error_message: Optional[str] = None


class Role(str, Enum):
    USER = "user"
    MODEL = "model"


class WebSource(BaseModel):
    kind: Literal["web"] = "web"
    title: str
    uri: str


class MapSource(BaseModel):
    kind: Literal["maps"] = "maps"
    title: str
    uri: str


GroundingReference = Annotated[Union[WebSource, MapSource], Field(discriminator="kind")]


class ChatMessage(BaseModel):
    role: Role
    text: str
    grounding_references: Optional[List[GroundingReference]] = None


class Slide(BaseModel):
    title: str
    points: List[str]
    footer: str


class AcademicLevel(str, Enum):
    BACHELOR = "Bachelor of Science"
    MASTER = "Master of Science"
    PHD = "Doctor of Philosophy"
    POSTDOC = "Post-Doctoral Research"


class Faculty(str, Enum):
    SCIENCE_TECH = "Faculty of Science & Technology"
    HEALTH_SCIENCES = "Faculty of Health Sciences"
    ENGINEERING = "Faculty of Engineering"


class Lesson(BaseModel):
    id: str
    title: str
    code: str
    description: str
    content: str


class Course(BaseModel):
    id: str
    name: str
    level: AcademicLevel
    faculty: Faculty
    university: str
    years: int
    lessons: List[Lesson]


class Feature(str, Enum):
    CHAT = "chat"
    LESSON = "lesson"
    SLIDES = "slides"
    LAB_REPORT = "lab_report"
    THESIS = "thesis"
    IMAGE_EDIT = "image_edit"
    IMAGE = "image"
    VIDEO = "video"
    SPEECH = "speech"
    TRANSCRIPTION = "transcription"
    ANALYSIS = "analysis"
    LIVE = "live"


class PromptRequest(BaseModel):
    """A fully-formed request for one gateway call. Never persisted."""

    feature: Feature
    directive: str = Field(description="Instruction text sent to the model")
    system_instruction: Optional[str] = Field(default=None, description="System instruction")
    model: Optional[str] = Field(default=None, description="Model override")
    parameters: Dict[str, Any] = Field(
        default_factory=dict, description="Structured constraints (aspect ratio, voice, ...)"
    )
    web_grounding: bool = Field(default=False, description="Enable web search grounding")
    maps_grounding: bool = Field(default=False, description="Enable maps grounding")
    thinking_budget: Optional[int] = Field(default=None, description="Thinking token budget")
