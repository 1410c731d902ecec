"""
Session State Machine
---------------------
Single source of truth for the role and phase of one peer-to-peer session.

Every reset bumps :attr:`SessionStateMachine.epoch` before releasing any
resource. Coroutines that were suspended across a reset notice the epoch
change when they resume and abandon their work instead of touching the new
state.
"""
import logging
from typing import List, Optional

from ..config import Settings, get_settings
from ..display import DisplayLog, StatusLevel
from ..exceptions import (
    AlreadyInProgress,
    ChannelNotReady,
    InvalidRemoteCode,
    InvalidSessionState,
    RoleNotSet,
    SessionError,
)
from . import codec
from .call import CallController
from .data_channel import ChannelState, ChatChannel
from .engine import EngineEvent, EngineEventType, EngineFactory, NegotiationEngine
from .media import AudioPlayback, MediaCapture
from .models import Candidate, Role, SessionPhase
from .negotiator import SessionNegotiator, StaleNegotiation

logger = logging.getLogger(__name__)

GENERATION_PHASES = {
    SessionPhase.ROLE_CHOSEN,
    SessionPhase.CODE_READY,
    SessionPhase.AWAITING_REMOTE,
}
APPLY_PHASES = {
    SessionPhase.ROLE_CHOSEN,
    SessionPhase.NEGOTIATING,
    SessionPhase.CODE_READY,
    SessionPhase.AWAITING_REMOTE,
}
LINKED_PHASES = {
    SessionPhase.CONNECTED,
    SessionPhase.CHATTING,
    SessionPhase.CALLING,
}

ROLE_NAMES = {
    Role.INITIATOR: "Initiator",
    Role.RESPONDER: "Responder",
}


class SessionStateMachine:
    """Lifecycle controller for one session with one peer."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        engine_factory: Optional[EngineFactory] = None,
        capture: Optional[MediaCapture] = None,
        playback: Optional[AudioPlayback] = None,
        display: Optional[DisplayLog] = None,
    ):
        """
        Initialize the session.

        Args:
            settings: Configuration, defaults to the environment settings
            engine_factory: Builds a negotiation engine for an epoch
            capture: Microphone access used for calls
            playback: Remote audio output used for calls
            display: Sink for chat lines and status text
        """
        self.settings = settings or get_settings()
        self.display = display or DisplayLog()
        self.negotiator = SessionNegotiator(self, self.settings, engine_factory)
        self.call = CallController(
            capture or MediaCapture(self.settings),
            playback or AudioPlayback(self.settings),
            self.display,
        )

        self.role = Role.UNASSIGNED
        self.phase = SessionPhase.IDLE
        self.epoch = 0
        self.chat: Optional[ChatChannel] = None
        self.local_code: Optional[str] = None
        self.remote_code_input = ""
        self.last_error: Optional[SessionError] = None
        self.call_enabled = False

    @property
    def engine(self) -> Optional[NegotiationEngine]:
        return self.negotiator.engine

    @property
    def candidates(self) -> List[Candidate]:
        return list(self.negotiator.gatherer.candidates)

    @property
    def generating(self) -> bool:
        return self.negotiator.in_flight

    def _status(self, text: str, level: StatusLevel = StatusLevel.INFO) -> None:
        self.display.set_status(text, level)

    def _reject(self, error: SessionError) -> SessionError:
        logger.warning(f"Rejected in phase {self.phase.value}: {error}")
        self.last_error = error
        self._status(error.user_message, StatusLevel.ERROR)
        return error

    # Role and teardown

    async def choose_role(self, role: Role) -> None:
        if role is Role.UNASSIGNED:
            raise ValueError("choose_role needs the initiator or responder role")
        if role is self.role and self.phase is SessionPhase.ROLE_CHOSEN:
            return

        if self.role is not Role.UNASSIGNED or self.phase not in (SessionPhase.IDLE, SessionPhase.CLOSED):
            await self.reset()

        self.role = role
        self.phase = SessionPhase.ROLE_CHOSEN
        logger.info(f"Role chosen: {role.value}")
        self._status(f"Role: {ROLE_NAMES[role]}")

    async def reset(self) -> None:
        """Tear everything down and return to Idle. Never raises."""
        await self._teardown(keep_role=False)
        self._status("Session reset")

    async def close(self) -> None:
        """End a linked session for good."""
        if self.phase not in LINKED_PHASES:
            raise self._reject(InvalidSessionState("There is no connection to close"))
        await self._teardown(keep_role=False)
        self.phase = SessionPhase.CLOSED
        self._status("Connection closed")

    async def _teardown(self, keep_role: bool, release_flight: bool = True) -> None:
        self.epoch += 1
        logger.debug(f"Tearing down session (new epoch {self.epoch})")

        chat, self.chat = self.chat, None
        if chat is not None:
            chat.close()
        try:
            await self.call.reset()
        except Exception as e:
            logger.error(f"Error releasing call resources: {e}")
        await self.negotiator.teardown(release_flight=release_flight)

        self.local_code = None
        self.call_enabled = False
        self.display.input_enabled = False
        if not keep_role:
            self.role = Role.UNASSIGNED
            self.remote_code_input = ""
        self.phase = SessionPhase.IDLE

    async def _fail(self, epoch: int, error: SessionError) -> None:
        """Roll a failed negotiation back to RoleChosen."""
        if epoch != self.epoch:
            return
        logger.error(f"Negotiation failed: {error}")
        self.last_error = error
        await self._teardown(keep_role=True)
        self.phase = SessionPhase.ROLE_CHOSEN
        self._status(error.user_message, StatusLevel.ERROR)

    # Negotiation

    async def begin_generation(self) -> Optional[str]:
        """Generate this side's connection code.

        Returns:
            The code text, or None if the session was reset meanwhile

        Raises:
            RoleNotSet, AlreadyInProgress, InvalidSessionState, or the
            classified negotiation error
        """
        if self.role is Role.UNASSIGNED:
            raise self._reject(RoleNotSet())
        if self.negotiator.in_flight:
            raise self._reject(AlreadyInProgress())
        if self.phase not in GENERATION_PHASES:
            raise self._reject(InvalidSessionState(f"Cannot generate a code while {self.phase.value}"))

        role = self.role
        flight = self.negotiator.begin_flight()
        try:
            # Each round starts from a fresh engine
            await self._teardown(keep_role=True, release_flight=False)
            if self.role is not role:
                return None
            epoch = self.epoch
            self.phase = SessionPhase.NEGOTIATING
            self._status("Generating connection code...")

            try:
                _, text = await self.negotiator.generate(self.role, epoch, self.remote_code_input)
            except StaleNegotiation:
                logger.info("Discarding a code generation interrupted by a reset")
                return None
            except SessionError as e:
                await self._fail(epoch, e)
                raise

            self.local_code = text
            self.phase = SessionPhase.CODE_READY
            self._status("Code generated", StatusLevel.SUCCESS)
            return text
        finally:
            self.negotiator.end_flight(flight)

    def mark_code_exported(self) -> str:
        """Record that the local code was handed to the peer (copied)."""
        if self.local_code is None:
            raise self._reject(InvalidSessionState("There is no code to copy yet"))
        if self.phase is SessionPhase.CODE_READY:
            self.phase = SessionPhase.AWAITING_REMOTE
            self._status("Code copied, waiting for the peer's code")
        return self.local_code

    async def apply_remote_code(self, code_text: str, silent: bool = False) -> Optional[str]:
        """Apply the peer's connection code.

        Args:
            code_text: The pasted code
            silent: Used while generating; leaves the phase untouched and
                produces no reply

        Returns:
            A follow-up local code when one was generated, else None
        """
        if self.role is Role.UNASSIGNED:
            raise self._reject(RoleNotSet())
        if self.phase not in APPLY_PHASES:
            raise self._reject(InvalidSessionState(f"Cannot apply a code while {self.phase.value}"))
        if silent:
            return await self._apply(code_text, silent=True)

        if self.negotiator.in_flight:
            raise self._reject(AlreadyInProgress())
        flight = self.negotiator.begin_flight()
        try:
            return await self._apply(code_text, silent=False)
        finally:
            self.negotiator.end_flight(flight)

    async def _apply(self, code_text: str, silent: bool) -> Optional[str]:
        epoch = self.epoch

        # Nothing has touched the engine yet, so a bad paste keeps the session
        try:
            code = codec.decode(code_text)
            if code.role is not self.role.peer:
                raise InvalidRemoteCode(f"Both peers chose the {code.role.value} role")
        except InvalidRemoteCode as e:
            if silent:
                raise
            raise self._reject(e)

        try:
            await self.negotiator.apply(code, epoch)
            if silent:
                return None
            reply = await self.negotiator.reply(self.role, epoch)
        except StaleNegotiation:
            if silent:
                raise
            logger.info("Discarding a remote code applied before a reset")
            return None
        except SessionError as e:
            if not silent:
                await self._fail(epoch, e)
            raise

        reply_text = None
        if reply is not None:
            _, reply_text = reply
            self.local_code = reply_text
            self._status("Reply code generated", StatusLevel.SUCCESS)

        self.phase = SessionPhase.CHATTING if self.chat and self.chat.is_open else SessionPhase.CONNECTED
        self.call_enabled = True
        self._status("Connection established", StatusLevel.SUCCESS)
        return reply_text

    # Engine events

    def attach_channel(self, channel) -> ChatChannel:
        if self.chat is not None and self.chat.channel is channel:
            return self.chat
        chat = ChatChannel(channel, self.display, self.settings.CHANNEL_LABEL)
        chat.on_state_change(self._on_chat_state)
        self.chat = chat
        return chat

    def _on_chat_state(self, chat: ChatChannel, state: ChannelState) -> None:
        if chat is not self.chat:
            return
        if state is ChannelState.OPEN:
            if self.phase in (
                SessionPhase.CODE_READY,
                SessionPhase.AWAITING_REMOTE,
                SessionPhase.CONNECTED,
            ):
                self.phase = SessionPhase.CHATTING
            self.call_enabled = True
        elif self.phase is SessionPhase.CHATTING:
            self.phase = SessionPhase.CONNECTED

    async def handle_engine_event(self, event: EngineEvent) -> None:
        if event.epoch != self.epoch:
            return

        if event.type is EngineEventType.CHANNEL_ADDED:
            self.attach_channel(event.channel)
        elif event.type in (
            EngineEventType.CHANNEL_OPEN,
            EngineEventType.CHANNEL_MESSAGE,
            EngineEventType.CHANNEL_CLOSED,
            EngineEventType.CHANNEL_ERROR,
        ):
            self._route_channel_event(event)
        elif event.type is EngineEventType.TRACK:
            await self.call.handle_remote_track(event.data)
        elif event.type is EngineEventType.CONNECTION_STATE:
            self._on_connection_state(event.data)

    def _route_channel_event(self, event: EngineEvent) -> None:
        chat = self.chat
        if chat is None or chat.channel is not event.channel:
            logger.debug(f"Ignoring {event.type.name} for an unknown channel")
            return
        if event.type is EngineEventType.CHANNEL_OPEN:
            chat.handle_open()
        elif event.type is EngineEventType.CHANNEL_MESSAGE:
            chat.handle_message(event.data)
        elif event.type is EngineEventType.CHANNEL_CLOSED:
            chat.handle_close()
        else:
            chat.handle_error(event.data)

    def _on_connection_state(self, state: str) -> None:
        if state == "connected":
            if self.phase in (SessionPhase.CODE_READY, SessionPhase.AWAITING_REMOTE):
                self.phase = SessionPhase.CONNECTED
                self.call_enabled = True
            self._status("Peer connected", StatusLevel.SUCCESS)
        elif state == "failed":
            self._status("Connection failed", StatusLevel.ERROR)
        elif state in ("disconnected", "closed"):
            self._status("Peer disconnected", StatusLevel.ERROR)

    # Chat and calls

    def send_message(self, text: str) -> Optional[ChannelNotReady]:
        """Send a chat line. Returns an error instead of raising."""
        if self.chat is None:
            return ChannelNotReady()
        return self.chat.send(text)

    async def start_call(self) -> None:
        if self.phase not in (SessionPhase.CONNECTED, SessionPhase.CHATTING):
            raise self._reject(InvalidSessionState("Connect to a peer before calling"))

        epoch = self.epoch
        try:
            started = await self.call.start_call(self.engine, lambda: epoch == self.epoch)
        except SessionError as e:
            self.last_error = e
            raise
        if not started:
            return
        if epoch != self.epoch:
            # Reset while remote playback was starting
            await self.call.hang_up()
            return
        self.phase = SessionPhase.CALLING

    async def hang_up(self) -> None:
        if not self.call.active:
            return
        await self.call.hang_up()
        if self.phase is SessionPhase.CALLING:
            self.phase = SessionPhase.CHATTING if self.chat and self.chat.is_open else SessionPhase.CONNECTED
