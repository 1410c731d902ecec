"""
Candidate Gatherer
------------------
Bounds candidate discovery for one negotiation round.

A round opens before the local description is applied, so no candidate is
missed, and its timeout is armed once the engine has started gathering. The
round finishes when the engine reports gathering complete or when the timeout
elapses, whichever comes first. A timeout is not an error: the candidates
collected so far are returned.
"""
import asyncio
import logging
from typing import List, Optional

from .models import Candidate

logger = logging.getLogger(__name__)


class GatheringCancelled(Exception):
    """Raised to a waiter whose round was replaced or cleared."""


class CandidateGatherer:
    """Collects candidates for exactly one round at a time."""

    def __init__(self, timeout: float = 5.0):
        """Initialize the gatherer.

        Args:
            timeout: Seconds to wait for the engine to finish gathering
        """
        self.timeout = timeout
        self.candidates: List[Candidate] = []
        self.timed_out = False
        self._epoch: Optional[int] = None
        self._done: Optional[asyncio.Future] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def active(self) -> bool:
        return self._done is not None and not self._done.done()

    def start(self, epoch: int, arm: bool = True) -> None:
        """Begin a new round, discarding any previous one.

        Args:
            epoch: Session epoch the round belongs to
            arm: Start the timeout now; otherwise call :meth:`arm` later
        """
        self.cancel()
        loop = asyncio.get_running_loop()
        self.candidates = []
        self.timed_out = False
        self._epoch = epoch
        self._done = loop.create_future()
        logger.debug(f"Candidate gathering started (epoch {epoch})")
        if arm:
            self.arm()

    def arm(self) -> None:
        """Start the timeout of the current round, once."""
        if not self.active or self._timer is not None:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.timeout, self._expire, self._done)

    def add(self, candidate: Candidate, epoch: int) -> bool:
        """Append a discovered candidate if it belongs to the current round."""
        if not self.active or epoch != self._epoch:
            logger.debug(f"Dropping candidate outside the current round: {candidate.candidate}")
            return False
        self.candidates.append(candidate)
        return True

    def complete(self, epoch: int) -> None:
        """The engine finished gathering for this round."""
        if not self.active or epoch != self._epoch:
            return
        logger.info(f"Candidate gathering complete: {len(self.candidates)} candidate(s)")
        self._finish(cancelled=False)

    async def wait(self) -> List[Candidate]:
        """Wait for the current round and return its candidates.

        Raises:
            GatheringCancelled: if the round was replaced or cleared meanwhile
        """
        if self._done is None:
            raise RuntimeError("Candidate gathering was not started")
        done = self._done
        candidates = self.candidates
        cancelled = await done
        if cancelled:
            raise GatheringCancelled()
        return list(candidates)

    def cancel(self) -> None:
        """Stop listening for the current round, if any."""
        if self.active:
            logger.debug("Candidate gathering cancelled")
            self._finish(cancelled=True)
        self._epoch = None

    def clear(self) -> None:
        self.cancel()
        self.candidates = []
        self.timed_out = False

    def _finish(self, cancelled: bool) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._done is not None and not self._done.done():
            self._done.set_result(cancelled)

    def _expire(self, done: asyncio.Future) -> None:
        if done is not self._done or done.done():
            return
        self.timed_out = True
        logger.warning(
            f"Candidate gathering timed out after {self.timeout:.1f}s "
            f"with {len(self.candidates)} candidate(s)"
        )
        self._finish(cancelled=False)
