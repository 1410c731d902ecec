"""
Mock negotiation engine for testing.

Simulates the signaling states of a peer connection without any network.
"""
import asyncio
from typing import Dict, List, Optional, Set

from sunny_side.config import Settings
from sunny_side.p2p.engine import EngineEventType, NegotiationEngine
from sunny_side.p2p.models import Candidate, SessionDescription

DEFAULT_CANDIDATES = [
    Candidate("candidate:1 1 udp 2130706431 192.168.1.20 50000 typ host", "0", 0),
    Candidate(
        "candidate:2 1 udp 1694498815 203.0.113.7 50000 typ srflx raddr 192.168.1.20 rport 50000",
        "0",
        0,
    ),
]


class MockEngineError(Exception):
    """Failure injected into the mock engine."""


class MockChannel:
    """Stand-in for an RTCDataChannel."""

    def __init__(self, label: str = "chat"):
        self.label = label
        self.readyState = "connecting"
        self.sent: List[str] = []
        self.fail_send = False

    def send(self, data) -> None:
        if self.fail_send or self.readyState != "open":
            raise MockEngineError("channel is not open")
        self.sent.append(data)

    def close(self) -> None:
        self.readyState = "closed"


class MockEngine(NegotiationEngine):
    """Scriptable :class:`NegotiationEngine`."""

    def __init__(
        self,
        epoch: int,
        candidates: Optional[List[Candidate]] = None,
        complete_gathering: bool = True,
        emit_candidates: bool = True,
        delays: Optional[Dict[str, float]] = None,
        fail: Optional[Set[str]] = None,
        hold: Optional[Dict[str, asyncio.Event]] = None,
    ):
        super().__init__(epoch)
        self.candidates = list(DEFAULT_CANDIDATES if candidates is None else candidates)
        self.complete_gathering = complete_gathering
        self.emit_candidates = emit_candidates
        self.delays = dict(delays or {})
        self.fail = set(fail or ())
        self.hold = dict(hold or {})
        self.calls: List[str] = []
        self.state = "stable"
        self.local: Optional[SessionDescription] = None
        self.remote: Optional[SessionDescription] = None
        self.remote_candidates: List[Optional[Candidate]] = []
        self.channels: List[MockChannel] = []
        self.tracks: list = []
        self.audio_enabled = False
        self.closed = False

    async def _step(self, name: str) -> None:
        self.calls.append(name)
        if name in self.hold:
            await self.hold[name].wait()
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        if name in self.fail:
            raise MockEngineError(f"{name} failed")

    @property
    def signaling_state(self) -> str:
        return self.state

    @property
    def local_description(self) -> Optional[SessionDescription]:
        return self.local

    def local_candidates(self) -> List[Candidate]:
        return list(self.candidates) if self.local is not None else []

    def create_channel(self, label: str) -> MockChannel:
        self.calls.append("create_channel")
        if "create_channel" in self.fail:
            raise MockEngineError("create_channel failed")
        channel = MockChannel(label)
        self.channels.append(channel)
        return channel

    def enable_audio(self) -> None:
        self.audio_enabled = True

    async def create_offer(self) -> SessionDescription:
        await self._step("create_offer")
        return SessionDescription("offer", f"v=0\r\ns=offer {self.epoch}\r\nm=application 9 UDP/DTLS/SCTP webrtc-datachannel\r\n")

    async def create_answer(self) -> SessionDescription:
        await self._step("create_answer")
        if self.state != "have-remote-offer":
            raise MockEngineError("no remote offer to answer")
        return SessionDescription("answer", f"v=0\r\ns=answer {self.epoch}\r\nm=application 9 UDP/DTLS/SCTP webrtc-datachannel\r\n")

    async def set_local_description(self, description: SessionDescription) -> None:
        await self._step("set_local_description")
        self.local = description
        self.state = "have-local-offer" if description.type == "offer" else "stable"
        if self.emit_candidates:
            for candidate in self.candidates:
                self._emit(EngineEventType.CANDIDATE, candidate)
        if self.complete_gathering:
            self._emit(EngineEventType.GATHERING_COMPLETE)

    async def set_remote_description(self, description: SessionDescription) -> None:
        await self._step("set_remote_description")
        if description.type == "offer":
            self.remote = description
            self.state = "have-remote-offer"
            channel = MockChannel("chat")
            self.channels.append(channel)
            self._emit(EngineEventType.CHANNEL_ADDED, channel=channel)
        elif self.state == "have-local-offer":
            self.remote = description
            self.state = "stable"
        else:
            raise MockEngineError(f"cannot apply {description.type} in state {self.state}")

    async def add_remote_candidate(self, candidate: Optional[Candidate]) -> None:
        await self._step("add_remote_candidate")
        self.remote_candidates.append(candidate)

    def attach_track(self, track) -> None:
        if "attach_track" in self.fail:
            raise MockEngineError("attach_track failed")
        self.tracks.append(track)

    def detach_track(self, track) -> None:
        if track in self.tracks:
            self.tracks.remove(track)

    async def close(self) -> None:
        self.calls.append("close")
        self.closed = True

    # Helpers for tests

    def open_channels(self) -> None:
        for channel in self.channels:
            channel.readyState = "open"
            self._emit(EngineEventType.CHANNEL_OPEN, channel=channel)

    def receive(self, text: str) -> None:
        self._emit(EngineEventType.CHANNEL_MESSAGE, text, self.channels[0])

    def close_channels(self) -> None:
        for channel in self.channels:
            channel.readyState = "closed"
            self._emit(EngineEventType.CHANNEL_CLOSED, channel=channel)

    def connection_state(self, state: str) -> None:
        self._emit(EngineEventType.CONNECTION_STATE, state)

    def remote_track(self, track) -> None:
        self._emit(EngineEventType.TRACK, track)


class MockEngineFactory:
    """Engine factory recording every engine it builds."""

    def __init__(self, **options):
        self.options = options
        self.engines: List[MockEngine] = []
        self.fail = False

    def __call__(self, settings: Settings, epoch: int) -> MockEngine:
        if self.fail:
            raise MockEngineError("cannot create engine")
        engine = MockEngine(epoch, **self.options)
        self.engines.append(engine)
        return engine

    @property
    def last(self) -> MockEngine:
        return self.engines[-1]
