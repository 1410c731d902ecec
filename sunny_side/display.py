"""
Display sink for chat lines and status text.

The session pushes into a :class:`DisplayLog`; front-ends subscribe to it.
Nothing here is persisted.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class Direction(Enum):
    """Who wrote a chat message."""

    LOCAL = "local"
    REMOTE = "remote"


class StatusLevel(Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class ChatMessage:
    """A single chat line."""

    direction: Direction
    text: str

    def label(self) -> str:
        prefix = "You" if self.direction is Direction.LOCAL else "Peer"
        return f"{prefix}: {self.text}"


@dataclass(frozen=True)
class Status:
    text: str
    level: StatusLevel = StatusLevel.INFO


MessageListener = Callable[[ChatMessage], None]
StatusListener = Callable[[Status], None]


class DisplayLog:
    """Collects chat messages and the current status line."""

    def __init__(self):
        self.messages: List[ChatMessage] = []
        self.status: Optional[Status] = None
        self.input_enabled = False
        self._message_listeners: List[MessageListener] = []
        self._status_listeners: List[StatusListener] = []

    def on_message(self, listener: MessageListener) -> None:
        self._message_listeners.append(listener)

    def on_status(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def append(self, message: ChatMessage) -> None:
        self.messages.append(message)
        for listener in self._message_listeners:
            try:
                listener(message)
            except Exception as e:
                logger.error(f"Error in message listener: {e}")

    def set_status(self, text: str, level: StatusLevel = StatusLevel.INFO) -> None:
        self.status = Status(text, level)
        for listener in self._status_listeners:
            try:
                listener(self.status)
            except Exception as e:
                logger.error(f"Error in status listener: {e}")

    def clear(self) -> None:
        self.messages.clear()
