"""
Negotiation Engine
------------------
The boundary between the session logic and the WebRTC stack.

Engine callbacks are never delivered directly. Every engine owns an
:class:`asyncio.Queue` of :class:`EngineEvent` objects, each tagged with the
session epoch the engine was created for, so events from a torn-down engine
can be recognised and dropped.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, List, Optional

from aiortc import MediaStreamTrack, RTCPeerConnection, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp

from ..config import Settings
from .models import Candidate, SessionDescription

logger = logging.getLogger(__name__)


class EngineEventType(Enum):
    """Events an engine reports to the session."""

    CANDIDATE = auto()
    GATHERING_COMPLETE = auto()
    CHANNEL_ADDED = auto()
    CHANNEL_OPEN = auto()
    CHANNEL_MESSAGE = auto()
    CHANNEL_CLOSED = auto()
    CHANNEL_ERROR = auto()
    TRACK = auto()
    CONNECTION_STATE = auto()


@dataclass(frozen=True)
class EngineEvent:
    type: EngineEventType
    epoch: int
    data: Any = None
    channel: Any = None


class NegotiationEngine(ABC):
    """Abstract peer connection used by the negotiator."""

    def __init__(self, epoch: int):
        self.epoch = epoch
        self.events: "asyncio.Queue[EngineEvent]" = asyncio.Queue()

    def _emit(self, event_type: EngineEventType, data: Any = None, channel: Any = None) -> None:
        self.events.put_nowait(EngineEvent(event_type, self.epoch, data, channel))

    @property
    @abstractmethod
    def signaling_state(self) -> str:
        """Current signaling state (``stable``, ``have-remote-offer``...)."""

    @property
    @abstractmethod
    def local_description(self) -> Optional[SessionDescription]:
        """The applied local description, without inline candidates."""

    @abstractmethod
    def local_candidates(self) -> List[Candidate]:
        """Candidates carried by the applied local description, if any."""

    @abstractmethod
    def create_channel(self, label: str) -> Any:
        """Create an ordered, reliable data channel."""

    @abstractmethod
    def enable_audio(self) -> None:
        """Make sure the next offer/answer negotiates a two-way audio stream."""

    @abstractmethod
    async def create_offer(self) -> SessionDescription:
        pass

    @abstractmethod
    async def create_answer(self) -> SessionDescription:
        pass

    @abstractmethod
    async def set_local_description(self, description: SessionDescription) -> None:
        """Apply a local description and start candidate discovery."""

    @abstractmethod
    async def set_remote_description(self, description: SessionDescription) -> None:
        pass

    @abstractmethod
    async def add_remote_candidate(self, candidate: Optional[Candidate]) -> None:
        """Add one remote candidate; ``None`` signals end-of-candidates."""

    @abstractmethod
    def attach_track(self, track: MediaStreamTrack) -> None:
        pass

    @abstractmethod
    def detach_track(self, track: MediaStreamTrack) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


EngineFactory = Callable[[Settings, int], NegotiationEngine]


def _split_media_sections(sdp: str) -> List[List[str]]:
    sections: List[List[str]] = [[]]
    for line in sdp.splitlines():
        if line.startswith("m="):
            sections.append([])
        sections[-1].append(line)
    return sections


def extract_candidates(sdp: str) -> List[Candidate]:
    """Collect the ``a=candidate`` lines of an SDP blob, in order."""
    candidates: List[Candidate] = []
    # Section 0 is the session part, media sections start at 1
    for index, section in enumerate(_split_media_sections(sdp)[1:]):
        mid = None
        for line in section:
            if line.startswith("a=mid:"):
                mid = line[len("a=mid:"):].strip()
        for line in section:
            if line.startswith("a=candidate:"):
                candidates.append(
                    Candidate(candidate=line[2:].strip(), sdp_mid=mid, sdp_mline_index=index)
                )
    return candidates


def strip_candidates(sdp: str) -> str:
    """Remove inline candidates so they travel only in the candidate list."""
    lines = [
        line
        for line in sdp.splitlines()
        if line and not line.startswith("a=candidate:") and line != "a=end-of-candidates"
    ]
    return "\r\n".join(lines) + "\r\n"


class AiortcEngine(NegotiationEngine):
    """:class:`NegotiationEngine` backed by an aiortc ``RTCPeerConnection``."""

    def __init__(self, settings: Settings, epoch: int):
        super().__init__(epoch)
        self.settings = settings
        self._pc = RTCPeerConnection(configuration=settings.rtc_configuration())

        self._pc.on("datachannel", self._on_datachannel)
        self._pc.on("track", self._on_track)
        self._pc.on("connectionstatechange", self._on_connection_state_change)

    @property
    def signaling_state(self) -> str:
        return self._pc.signalingState

    @property
    def local_description(self) -> Optional[SessionDescription]:
        description = self._pc.localDescription
        if description is None:
            return None
        return SessionDescription(type=description.type, sdp=strip_candidates(description.sdp))

    def local_candidates(self) -> List[Candidate]:
        description = self._pc.localDescription
        if description is None:
            return []
        return extract_candidates(description.sdp)

    def create_channel(self, label: str) -> Any:
        channel = self._pc.createDataChannel(label, ordered=True)
        self._wire_channel(channel)
        return channel

    def enable_audio(self) -> None:
        transceivers = [t for t in self._pc.getTransceivers() if t.kind == "audio"]
        if not transceivers:
            self._pc.addTransceiver("audio", direction="sendrecv")
            return
        for transceiver in transceivers:
            transceiver.direction = "sendrecv"

    async def create_offer(self) -> SessionDescription:
        offer = await self._pc.createOffer()
        return SessionDescription(type=offer.type, sdp=offer.sdp)

    async def create_answer(self) -> SessionDescription:
        answer = await self._pc.createAnswer()
        return SessionDescription(type=answer.type, sdp=answer.sdp)

    async def set_local_description(self, description: SessionDescription) -> None:
        # aiortc gathers every candidate while applying the local description
        await self._pc.setLocalDescription(
            RTCSessionDescription(sdp=description.sdp, type=description.type)
        )
        for candidate in self.local_candidates():
            self._emit(EngineEventType.CANDIDATE, candidate)
        self._emit(EngineEventType.GATHERING_COMPLETE)

    async def set_remote_description(self, description: SessionDescription) -> None:
        await self._pc.setRemoteDescription(
            RTCSessionDescription(sdp=description.sdp, type=description.type)
        )

    async def add_remote_candidate(self, candidate: Optional[Candidate]) -> None:
        if candidate is None:
            for transport in self._ice_transports():
                await transport.addRemoteCandidate(None)
            return

        ice_candidate = candidate_from_sdp(candidate.candidate.split(":", 1)[1])
        ice_candidate.sdpMid = candidate.sdp_mid
        ice_candidate.sdpMLineIndex = candidate.sdp_mline_index
        await self._pc.addIceCandidate(ice_candidate)

    def attach_track(self, track: MediaStreamTrack) -> None:
        self._pc.addTrack(track)

    def detach_track(self, track: MediaStreamTrack) -> None:
        for sender in self._pc.getSenders():
            if sender.track is track:
                sender.replaceTrack(None)

    async def close(self) -> None:
        await self._pc.close()

    def _ice_transports(self) -> list:
        transports = []
        for transceiver in self._pc.getTransceivers():
            if transceiver.receiver.transport is not None:
                transports.append(transceiver.receiver.transport.transport)
        if self._pc.sctp is not None:
            transports.append(self._pc.sctp.transport.transport)

        unique = []
        for transport in transports:
            if all(transport is not seen for seen in unique):
                unique.append(transport)
        return unique

    def _wire_channel(self, channel: Any) -> None:
        channel.on("open", lambda: self._emit(EngineEventType.CHANNEL_OPEN, channel=channel))
        channel.on("close", lambda: self._emit(EngineEventType.CHANNEL_CLOSED, channel=channel))
        channel.on(
            "message",
            lambda message: self._emit(EngineEventType.CHANNEL_MESSAGE, message, channel),
        )
        channel.on(
            "error", lambda error: self._emit(EngineEventType.CHANNEL_ERROR, error, channel)
        )

    def _on_datachannel(self, channel: Any) -> None:
        logger.info(f"Remote data channel announced: {channel.label}")
        self._wire_channel(channel)
        self._emit(EngineEventType.CHANNEL_ADDED, channel=channel)
        # The channel may already be open when it is announced
        if channel.readyState == "open":
            self._emit(EngineEventType.CHANNEL_OPEN, channel=channel)

    def _on_track(self, track: MediaStreamTrack) -> None:
        logger.info(f"Received remote track: {track.kind}")
        self._emit(EngineEventType.TRACK, track)

    def _on_connection_state_change(self) -> None:
        logger.info(f"Connection state changed: {self._pc.connectionState}")
        self._emit(EngineEventType.CONNECTION_STATE, self._pc.connectionState)


def create_aiortc_engine(settings: Settings, epoch: int) -> NegotiationEngine:
    return AiortcEngine(settings, epoch)
