"""
Chat history persistence.

The chat controller receives a ChatHistoryStore instead of reaching for
ambient global state. The file store keeps a plain JSON array of messages
under a fixed storage key; there is no versioning or migration.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from common.entities import ChatMessage
from common.logging import get_logger

logger = get_logger(__name__)

_MESSAGES = TypeAdapter(List[ChatMessage])


class ChatHistoryStore(ABC):
    """Persistence port for one conversation."""

    @abstractmethod
    def load(self) -> List[ChatMessage]:
        """Return the persisted messages, or an empty list."""

    @abstractmethod
    def save(self, messages: List[ChatMessage]) -> None:
        """Replace the persisted messages."""

    @abstractmethod
    def clear(self) -> None:
        """Remove the persisted messages."""


class InMemoryChatStore(ChatHistoryStore):
    """Store that lives as long as the process."""

    def __init__(self, messages: Optional[List[ChatMessage]] = None):
        self._messages = [m.model_copy(deep=True) for m in messages or []]

    def load(self) -> List[ChatMessage]:
        return [m.model_copy(deep=True) for m in self._messages]

    def save(self, messages: List[ChatMessage]) -> None:
        self._messages = [m.model_copy(deep=True) for m in messages]

    def clear(self) -> None:
        self._messages = []


class JsonFileChatStore(ChatHistoryStore):
    """Store writing ``<data_dir>/<storage_key>.json``."""

    def __init__(self, data_dir: Path, storage_key: str):
        self.path = Path(data_dir) / f"{storage_key}.json"

    def load(self) -> List[ChatMessage]:
        if not self.path.exists():
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                messages = _MESSAGES.validate_python(json.load(f))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            # A corrupt history must not block startup
            logger.warning(
                event="chat_history_load_failed",
                message="Failed to load chat history, starting empty",
                path=str(self.path),
                error=str(e),
            )
            return []

        logger.debug(event="chat_history_loaded", path=str(self.path), count=len(messages))
        return messages

    def save(self, messages: List[ChatMessage]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(_MESSAGES.dump_json(messages, exclude_none=True).decode("utf-8"))
        tmp_path.replace(self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
        logger.info(event="chat_history_cleared", path=str(self.path))
