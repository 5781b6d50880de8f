"""
Configuration loader for the academic portal.

Loads settings from config.yaml. Environment variables are used ONLY for secrets.
Never log secrets.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field


class PortalConfig(BaseModel):
    """Configuration for the browser-facing WebSocket portal."""

    host: str = Field(default="127.0.0.1", description="Host to bind to")
    port: int = Field(default=8000, description="Port to bind to")
    connection_timeout: int = Field(default=300, description="Idle connection timeout in seconds")
    max_upload_size: int = Field(
        default=20 * 1024 * 1024, description="Maximum upload size in bytes (20MB)"
    )


class GenAIConfig(BaseModel):
    """Configuration for the hosted generative-AI service."""

    api_key_env: str = Field(
        default="GEMINI_API_KEY", description="Environment variable holding the API key"
    )
    text_model: str = Field(default="gemini-3-flash-preview", description="Fast text model")
    pro_model: str = Field(default="gemini-3-pro-preview", description="Long-form text model")
    image_edit_model: str = Field(
        default="gemini-2.5-flash-image", description="Image editing model"
    )
    image_model: str = Field(default="gemini-3-pro-image-preview", description="Image model")
    video_model: str = Field(default="veo-3.1-fast-generate-preview", description="Video model")
    speech_model: str = Field(default="gemini-2.5-flash-preview-tts", description="TTS model")
    live_model: str = Field(
        default="gemini-2.5-flash-native-audio-preview-12-2025", description="Live audio model"
    )
    speech_voice: str = Field(default="Kore", description="Prebuilt voice for speech synthesis")
    live_voice: str = Field(default="Zephyr", description="Prebuilt voice for the live lounge")
    request_timeout: float = Field(default=120.0, description="Per-call timeout in seconds")
    thinking_budget: Optional[int] = Field(
        default=None, description="Thinking budget for long-form text (None = model default)"
    )


class VideoPollingConfig(BaseModel):
    """Bounds for waiting on long-running video jobs."""

    interval_seconds: float = Field(default=10.0, description="Delay between status polls")
    max_polls: int = Field(default=60, description="Maximum number of status polls")
    timeout_seconds: float = Field(default=900.0, description="Overall wait limit in seconds")


class ChatStoreConfig(BaseModel):
    """Configuration for chat history persistence."""

    data_dir: str = Field(default="data", description="Directory for persisted state")
    storage_key: str = Field(
        default="seleste_nano_chat_history", description="Fixed key for the chat history"
    )


class Config(BaseModel):
    """Main configuration object."""

    portal: PortalConfig = Field(default_factory=PortalConfig)
    genai: GenAIConfig = Field(default_factory=GenAIConfig)
    video_polling: VideoPollingConfig = Field(default_factory=VideoPollingConfig)
    chat_store: ChatStoreConfig = Field(default_factory=ChatStoreConfig)
    log_level: str = Field(default="INFO", description="Logging level")
    enable_pretty_print: bool = Field(
        default=False, description="Enable custom pretty print for debugging"
    )
    save_to_file: bool = Field(default=False, description="Save logs to file")
    log_file_path: str = Field(default="portal.log", description="Log file path (relative to root)")
    max_log_file_size: int = Field(
        default=10485760, description="Max log file size in bytes (10MB)"
    )
    backup_count: int = Field(default=5, description="Number of backup log files to keep")


_LOGGING_KEYS = {
    "level": "log_level",
    "enable_pretty_print": "enable_pretty_print",
    "save_to_file": "save_to_file",
    "log_file_path": "log_file_path",
    "max_log_file_size": "max_log_file_size",
    "backup_count": "backup_count",
}


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from YAML file.

    Environment variables are used ONLY for secrets (API keys), not configuration.

    Args:
        config_path: Path to config.yaml file. Defaults to ./config.yaml

    Returns:
        Loaded configuration object
    """
    if config_path is None:
        config_path = Path("config.yaml")

    config_data: Dict[str, Any] = {}

    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}

    # Handle nested logging configuration
    logging_config = config_data.pop("logging", None) or {}
    for yaml_key, field_name in _LOGGING_KEYS.items():
        if yaml_key in logging_config:
            config_data[field_name] = logging_config[yaml_key]

    return Config(**config_data)
