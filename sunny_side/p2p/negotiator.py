"""
Session Negotiator
------------------
Drives the offer/answer exchange for one session.

The initiator creates the chat channel and an offer; the responder first
consumes the initiator's code, then answers. Both sides gather candidates and
publish a :class:`ConnectionCode`. Every step re-checks the session epoch
after resuming so that a reset in the meantime abandons the step.
"""
import asyncio
import logging
from typing import TYPE_CHECKING, List, Optional, Tuple

from ..config import Settings
from ..exceptions import (
    AlreadyInProgress,
    CandidateApplyFailed,
    DescriptionCreationFailed,
    EngineCreationFailed,
    InvalidRemoteCode,
    RemoteDescriptionRejected,
)
from . import codec
from .engine import EngineEventType, EngineFactory, NegotiationEngine, create_aiortc_engine
from .gatherer import CandidateGatherer, GatheringCancelled
from .models import Candidate, ConnectionCode, Role, SessionDescription

if TYPE_CHECKING:
    from .session import SessionStateMachine

logger = logging.getLogger(__name__)


class StaleNegotiation(Exception):
    """The session was reset while a negotiation step was in flight."""


class SessionNegotiator:
    """Offer/answer orchestration on top of a :class:`NegotiationEngine`."""

    def __init__(
        self,
        session: "SessionStateMachine",
        settings: Settings,
        engine_factory: Optional[EngineFactory] = None,
    ):
        self.session = session
        self.settings = settings
        self.engine_factory = engine_factory or create_aiortc_engine
        self.gatherer = CandidateGatherer(settings.gather_timeout)
        self.engine: Optional[NegotiationEngine] = None
        self.local_code: Optional[ConnectionCode] = None
        self.remote_code: Optional[ConnectionCode] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._flight: Optional[object] = None

    # Single-flight guard

    @property
    def in_flight(self) -> bool:
        return self._flight is not None

    def begin_flight(self) -> object:
        """Claim the session for one negotiation attempt.

        Raises:
            AlreadyInProgress: if another attempt holds it
        """
        if self._flight is not None:
            raise AlreadyInProgress()
        self._flight = object()
        return self._flight

    def end_flight(self, token: object) -> None:
        # A reset may already have released this flight and started another
        if self._flight is token:
            self._flight = None

    # Engine lifecycle

    def _check(self, epoch: int) -> None:
        if epoch != self.session.epoch:
            raise StaleNegotiation()

    def ensure_engine(self, epoch: int) -> NegotiationEngine:
        if self.engine is not None:
            return self.engine
        try:
            engine = self.engine_factory(self.settings, epoch)
        except Exception as e:
            logger.error(f"Failed to create peer connection: {e}")
            raise EngineCreationFailed() from e

        self.engine = engine
        self._pump_task = asyncio.create_task(self._pump(engine))
        logger.info(f"Peer connection created (epoch {epoch})")
        return engine

    async def _pump(self, engine: NegotiationEngine) -> None:
        """Deliver engine events of the current epoch, in order."""
        while True:
            event = await engine.events.get()
            if engine is not self.engine or event.epoch != self.session.epoch:
                logger.debug(f"Dropping stale engine event {event.type.name}")
                continue

            if event.type is EngineEventType.CANDIDATE:
                self.gatherer.add(event.data, event.epoch)
            elif event.type is EngineEventType.GATHERING_COMPLETE:
                self.gatherer.complete(event.epoch)
            else:
                try:
                    await self.session.handle_engine_event(event)
                except Exception as e:
                    logger.error(f"Error handling engine event {event.type.name}: {e}", exc_info=True)

    async def teardown(self, release_flight: bool = True) -> None:
        """Close the engine and forget everything about the current round."""
        self.gatherer.clear()
        if release_flight:
            self._flight = None
        self.local_code = None
        self.remote_code = None

        engine, self.engine = self.engine, None
        task, self._pump_task = self._pump_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if engine is not None:
            try:
                await engine.close()
            except Exception as e:
                logger.error(f"Error closing peer connection: {e}")
            logger.info(f"Peer connection closed (epoch {engine.epoch})")

    # Negotiation

    async def generate(
        self, role: Role, epoch: int, remote_text: Optional[str] = None
    ) -> Tuple[ConnectionCode, str]:
        """Produce this side's connection code for a fresh round.

        Returns:
            The code and its text form
        """
        if role is Role.RESPONDER:
            if not remote_text or not remote_text.strip():
                raise InvalidRemoteCode("Paste the initiator's connection code first")
            # The answer can only be created once the offer is known
            await self.session.apply_remote_code(remote_text, silent=True)
            self._check(epoch)
            engine = self.engine
        else:
            engine = self.ensure_engine(epoch)
            try:
                channel = engine.create_channel(self.settings.CHANNEL_LABEL)
            except Exception as e:
                logger.error(f"Failed to create chat channel: {e}")
                raise EngineCreationFailed("Could not create the chat channel") from e
            self.session.attach_channel(channel)

        try:
            if self.settings.AUDIO_ENABLED:
                engine.enable_audio()
            if role is Role.INITIATOR:
                description = await engine.create_offer()
            else:
                description = await engine.create_answer()
        except Exception as e:
            self._check(epoch)
            logger.error(f"Failed to create local description: {e}")
            raise DescriptionCreationFailed() from e
        self._check(epoch)

        return await self._publish(engine, description, role, epoch)

    async def apply(self, code: ConnectionCode, epoch: int) -> None:
        """Apply the peer's description and candidates to the engine."""
        engine = self.ensure_engine(epoch)
        try:
            await engine.set_remote_description(code.description)
        except Exception as e:
            self._check(epoch)
            logger.error(f"Remote description rejected: {e}")
            raise RemoteDescriptionRejected() from e
        self._check(epoch)

        applied = 0
        for candidate in code.candidates:
            try:
                await engine.add_remote_candidate(candidate)
                applied += 1
            except Exception as e:
                failure = CandidateApplyFailed(f"Could not apply candidate {candidate.candidate!r}: {e}")
                logger.warning(failure.user_message)
            self._check(epoch)

        try:
            await engine.add_remote_candidate(None)
        except Exception as e:
            logger.warning(f"Could not signal end of candidates: {e}")
        self._check(epoch)

        self.remote_code = code
        logger.info(f"Applied remote {code.description.type}: {applied}/{len(code.candidates)} candidate(s)")

    async def reply(self, role: Role, epoch: int) -> Optional[Tuple[ConnectionCode, str]]:
        """Produce a follow-up code after a remote code was applied, if one is due."""
        engine = self.engine
        remote = self.remote_code
        if engine is None or remote is None:
            return None

        if engine.signaling_state == "have-remote-offer":
            try:
                if self.settings.AUDIO_ENABLED:
                    engine.enable_audio()
                description = await engine.create_answer()
            except Exception as e:
                self._check(epoch)
                logger.error(f"Failed to create answer: {e}")
                raise DescriptionCreationFailed() from e
            self._check(epoch)
            return await self._publish(engine, description, role, epoch)

        if role is Role.INITIATOR and remote.role is Role.RESPONDER:
            # The exchange is complete; re-expose the local side as a new code
            description = engine.local_description
            if description is None:
                return None
            candidates = self.local_code.candidates if self.local_code else ()
            return self._freeze(ConnectionCode(role, description, candidates))

        return None

    async def _publish(
        self,
        engine: NegotiationEngine,
        description: SessionDescription,
        role: Role,
        epoch: int,
    ) -> Tuple[ConnectionCode, str]:
        gathering = self.settings.GATHER_CANDIDATES
        if gathering:
            # Listen before applying, time out only once gathering has begun
            self.gatherer.start(epoch, arm=False)

        try:
            await engine.set_local_description(description)
        except Exception as e:
            self._check(epoch)
            self.gatherer.cancel()
            logger.error(f"Failed to set local description: {e}")
            raise DescriptionCreationFailed() from e
        self._check(epoch)

        if gathering:
            self.gatherer.arm()
            try:
                candidates = await self.gatherer.wait()
            except GatheringCancelled:
                raise StaleNegotiation()
            self._check(epoch)
            if self.gatherer.timed_out:
                candidates = self._merge_local_candidates(engine, candidates)
        else:
            candidates = []

        local = engine.local_description or description
        return self._freeze(ConnectionCode(role, local, candidates))

    @staticmethod
    def _merge_local_candidates(engine: NegotiationEngine, gathered: List[Candidate]) -> List[Candidate]:
        """Add candidates already present in the local description but not yet reported."""
        try:
            known = engine.local_candidates()
        except Exception as e:
            logger.warning(f"Could not read candidates from the local description: {e}")
            return gathered
        merged = list(gathered)
        merged.extend(candidate for candidate in known if candidate not in gathered)
        if len(merged) > len(gathered):
            logger.info(f"Recovered {len(merged) - len(gathered)} candidate(s) from the local description")
        return merged

    def _freeze(self, code: ConnectionCode) -> Tuple[ConnectionCode, str]:
        try:
            text = codec.encode(code)
        except Exception as e:
            logger.error(f"Failed to encode connection code: {e}")
            raise DescriptionCreationFailed("Could not encode the connection code") from e
        self.local_code = code
        logger.info(
            f"Connection code ready: {code.role.value} {code.description.type}, "
            f"{len(code.candidates)} candidate(s)"
        )
        return code, text
