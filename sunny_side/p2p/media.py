"""
Local audio capture and remote audio playback, on top of aiortc's media helpers.
"""
import logging
from typing import Any, Dict, List, Optional

from aiortc import MediaStreamTrack
from aiortc.contrib.media import MediaBlackhole, MediaPlayer, MediaRecorder

from ..config import Settings
from ..exceptions import MediaAccessDenied

logger = logging.getLogger(__name__)

AUDIO_CONSTRAINTS: Dict[str, Any] = {
    "echoCancellation": True,
    "noiseSuppression": True,
    "autoGainControl": True,
}


class LocalAudioStream:
    """A captured microphone stream."""

    def __init__(self, tracks: List[MediaStreamTrack], player: Any = None):
        self.tracks = list(tracks)
        self._player = player

    def stop(self) -> None:
        for track in self.tracks:
            track.stop()


class MediaCapture:
    """Opens the microphone through ffmpeg (``MediaPlayer``)."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def acquire(self, constraints: Optional[Dict[str, Any]] = None) -> LocalAudioStream:
        """Open the configured audio input.

        Raises:
            MediaAccessDenied: if the device cannot be opened or has no audio
        """
        constraints = constraints or AUDIO_CONSTRAINTS
        # Echo cancellation, noise suppression and gain control are left to
        # the system audio server (e.g. PulseAudio modules)
        logger.debug(f"Requested audio processing: {constraints}")

        try:
            player = MediaPlayer(self.settings.AUDIO_DEVICE, format=self.settings.AUDIO_FORMAT)
        except Exception as e:
            logger.error(f"Failed to open audio device {self.settings.AUDIO_DEVICE!r}: {e}")
            raise MediaAccessDenied(f"Microphone access failed: {e}") from e

        if player.audio is None:
            # Stopping the last track closes the device
            if player.video is not None:
                player.video.stop()
            logger.error(f"Audio device {self.settings.AUDIO_DEVICE!r} has no audio stream")
            raise MediaAccessDenied("The selected input has no audio")

        logger.info(f"Capturing audio from {self.settings.AUDIO_DEVICE!r}")
        return LocalAudioStream([player.audio], player)


class AudioPlayback:
    """Plays (or discards) the remote audio track."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._sink: Any = None

    @property
    def attached(self) -> bool:
        return self._sink is not None

    async def attach(self, track: MediaStreamTrack) -> None:
        await self.detach()
        if self.settings.PLAYBACK_DEVICE:
            sink = MediaRecorder(self.settings.PLAYBACK_DEVICE, format=self.settings.PLAYBACK_FORMAT)
        else:
            sink = MediaBlackhole()
        sink.addTrack(track)
        await sink.start()
        self._sink = sink
        logger.info("Remote audio playback started")

    async def detach(self) -> None:
        if self._sink is None:
            return
        sink, self._sink = self._sink, None
        try:
            await sink.stop()
        except Exception as e:
            logger.error(f"Error stopping audio playback: {e}")
        logger.info("Remote audio playback stopped")
