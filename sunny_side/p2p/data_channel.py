"""
Chat Channel
------------
Wraps the negotiated WebRTC data channel used for chat.
"""
import logging
from enum import Enum, auto
from typing import Any, Callable, List, Optional, Union

from ..display import ChatMessage, Direction, DisplayLog, StatusLevel
from ..exceptions import ChannelNotReady

logger = logging.getLogger(__name__)


class ChannelState(Enum):
    """States of a chat channel."""

    OPENING = auto()
    OPEN = auto()
    CLOSED = auto()
    ERRORED = auto()


StateHandler = Callable[["ChatChannel", ChannelState], None]


class ChatChannel:
    """Wrapper around an RTCDataChannel with a chat-oriented interface.

    The channel only becomes :attr:`ChannelState.OPEN` when the engine reports
    it open; being negotiated is not enough.
    """

    def __init__(self, rtc_channel: Any, display: DisplayLog, label: str = ""):
        """Initialize the chat channel.

        Args:
            rtc_channel: The underlying RTCDataChannel
            display: Sink receiving chat lines and status updates
            label: Optional label for the channel
        """
        self._channel = rtc_channel
        self.display = display
        self.label = label or getattr(rtc_channel, "label", "chat")
        self.state = ChannelState.OPENING
        self._state_handlers: List[StateHandler] = []

    @property
    def channel(self) -> Any:
        return self._channel

    @property
    def is_open(self) -> bool:
        return self.state is ChannelState.OPEN

    def on_state_change(self, handler: StateHandler) -> None:
        self._state_handlers.append(handler)

    def send(self, text: str) -> Optional[ChannelNotReady]:
        """Send a chat line.

        Returns:
            None on success, or a :class:`ChannelNotReady` error when the
            channel is not open. Never raises, so callers can simply retry.
        """
        text = text.strip()
        if not text:
            return None
        if not self.is_open:
            logger.warning(f"Chat channel '{self.label}' is not open ({self.state.name})")
            return ChannelNotReady()

        try:
            self._channel.send(text)
        except Exception as e:
            logger.error(f"Error sending on chat channel '{self.label}': {e}")
            return ChannelNotReady(f"Message not sent: {e}")

        self.display.append(ChatMessage(Direction.LOCAL, text))
        return None

    def close(self) -> None:
        if self.state in (ChannelState.CLOSED, ChannelState.ERRORED):
            return
        try:
            self._channel.close()
        except Exception as e:
            logger.error(f"Error closing chat channel '{self.label}': {e}")
        self._set_state(ChannelState.CLOSED)

    def handle_open(self) -> None:
        if self.state is not ChannelState.OPENING:
            return
        logger.info(f"Chat channel '{self.label}' opened")
        self.display.input_enabled = True
        self.display.set_status("Chat connected", StatusLevel.SUCCESS)
        self._set_state(ChannelState.OPEN)

    def handle_message(self, message: Union[str, bytes]) -> None:
        if isinstance(message, (bytes, bytearray)):
            message = bytes(message).decode("utf-8", errors="replace")
        self.display.append(ChatMessage(Direction.REMOTE, message))

    def handle_close(self) -> None:
        if self.state in (ChannelState.CLOSED, ChannelState.ERRORED):
            return
        logger.info(f"Chat channel '{self.label}' closed")
        self.display.set_status("Chat disconnected", StatusLevel.ERROR)
        self._set_state(ChannelState.CLOSED)

    def handle_error(self, error: Any) -> None:
        logger.error(f"Chat channel '{self.label}' error: {error}")
        self.display.set_status("Chat error", StatusLevel.ERROR)
        self._set_state(ChannelState.ERRORED)

    def _set_state(self, state: ChannelState) -> None:
        self.state = state
        if state is not ChannelState.OPEN:
            self.display.input_enabled = False
        for handler in self._state_handlers:
            try:
                handler(self, state)
            except Exception as e:
                logger.error(f"Error in chat state handler: {e}")
