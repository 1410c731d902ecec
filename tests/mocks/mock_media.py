"""
Mock microphone capture and audio playback for testing.
"""
import asyncio
from typing import Any, Dict, List, Optional

from sunny_side.exceptions import MediaAccessDenied
from sunny_side.p2p.media import LocalAudioStream


class MockTrack:
    """Stand-in for a MediaStreamTrack."""

    def __init__(self, kind: str = "audio"):
        self.kind = kind
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class MockCapture:
    """Microphone that can be denied or delayed."""

    def __init__(self, deny: bool = False, hold: Optional[asyncio.Event] = None):
        self.deny = deny
        self.hold = hold
        self.streams: List[LocalAudioStream] = []
        self.constraints: Optional[Dict[str, Any]] = None

    async def acquire(self, constraints: Optional[Dict[str, Any]] = None) -> LocalAudioStream:
        self.constraints = constraints
        if self.hold is not None:
            await self.hold.wait()
        if self.deny:
            raise MediaAccessDenied("Permission denied")
        stream = LocalAudioStream([MockTrack("audio")])
        self.streams.append(stream)
        return stream

    @property
    def last(self) -> LocalAudioStream:
        return self.streams[-1]


class MockPlayback:
    """Records which remote track is being played."""

    def __init__(self):
        self.track: Any = None
        self.played: List[Any] = []

    @property
    def attached(self) -> bool:
        return self.track is not None

    async def attach(self, track: Any) -> None:
        self.track = track
        self.played.append(track)

    async def detach(self) -> None:
        self.track = None
