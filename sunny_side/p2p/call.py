"""
Call Controller
---------------
Audio call lifecycle on top of a negotiated connection.
"""
import logging
from typing import Any, Callable, Optional

from ..display import DisplayLog, StatusLevel
from ..exceptions import InvalidSessionState, MediaAccessDenied
from .engine import NegotiationEngine
from .media import AUDIO_CONSTRAINTS, AudioPlayback, LocalAudioStream, MediaCapture

logger = logging.getLogger(__name__)


class CallController:
    """Starts and stops the local microphone stream and remote playback.

    Only the first remote audio track is played; later ones are ignored until
    the call ends.
    """

    def __init__(self, capture: MediaCapture, playback: AudioPlayback, display: DisplayLog):
        self.capture = capture
        self.playback = playback
        self.display = display
        self.local_stream: Optional[LocalAudioStream] = None
        self.remote_track: Any = None
        self._engine: Optional[NegotiationEngine] = None

    @property
    def active(self) -> bool:
        return self.local_stream is not None

    async def start_call(
        self,
        engine: Optional[NegotiationEngine],
        is_current: Optional[Callable[[], bool]] = None,
    ) -> bool:
        """Open the microphone and send it over ``engine``.

        Args:
            engine: The negotiated connection
            is_current: Tells whether ``engine`` still belongs to the session
                once the microphone is open

        Returns:
            False if the session moved on while the microphone was opening

        Raises:
            InvalidSessionState: if there is no engine or a call is active
            MediaAccessDenied: if the microphone cannot be opened
        """
        if engine is None:
            raise InvalidSessionState("Connect to a peer before calling")
        if self.active:
            raise InvalidSessionState("A call is already active")

        try:
            stream = await self.capture.acquire(AUDIO_CONSTRAINTS)
        except MediaAccessDenied as e:
            self.display.set_status(e.user_message, StatusLevel.ERROR)
            raise

        if is_current is not None and not is_current():
            logger.info("Session was reset while opening the microphone")
            stream.stop()
            return False

        attached = []
        try:
            for track in stream.tracks:
                engine.attach_track(track)
                attached.append(track)
        except Exception as e:
            logger.error(f"Failed to attach audio to the connection: {e}")
            for track in attached:
                engine.detach_track(track)
            stream.stop()
            raise InvalidSessionState("The connection cannot carry audio") from e

        self.local_stream = stream
        self._engine = engine
        if self.remote_track is not None:
            await self.playback.attach(self.remote_track)

        logger.info("Call started")
        self.display.set_status("Call started", StatusLevel.SUCCESS)
        return True

    async def handle_remote_track(self, track: Any) -> None:
        """Remember the first remote audio track and play it during the call."""
        if getattr(track, "kind", None) != "audio":
            logger.debug(f"Ignoring remote {getattr(track, 'kind', 'unknown')} track")
            return
        if self.remote_track is not None:
            logger.info("Ignoring additional remote audio track")
            return

        self.remote_track = track
        if self.active:
            await self.playback.attach(track)

    async def hang_up(self) -> None:
        """Stop the call and release local and remote audio.

        Does nothing when no call is active.
        """
        if not self.active:
            return

        stream, self.local_stream = self.local_stream, None
        engine, self._engine = self._engine, None
        for track in stream.tracks:
            try:
                engine.detach_track(track)
            except Exception as e:
                logger.error(f"Error detaching local track: {e}")
        stream.stop()
        await self.playback.detach()
        self._release_remote_track()

        logger.info("Call ended")
        self.display.set_status("Call ended", StatusLevel.INFO)

    async def reset(self) -> None:
        """Drop every media resource of the session."""
        await self.hang_up()
        await self.playback.detach()
        self._release_remote_track()

    def _release_remote_track(self) -> None:
        track, self.remote_track = self.remote_track, None
        if track is not None:
            track.stop()
