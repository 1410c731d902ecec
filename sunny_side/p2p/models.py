"""
Session data model: roles, phases, candidates and connection codes.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Role(Enum):
    """Which side of the offer/answer exchange this peer plays."""

    UNASSIGNED = "unassigned"
    INITIATOR = "initiator"
    RESPONDER = "responder"

    @property
    def peer(self) -> "Role":
        """The complementary role."""
        if self is Role.INITIATOR:
            return Role.RESPONDER
        if self is Role.RESPONDER:
            return Role.INITIATOR
        return Role.UNASSIGNED


class SessionPhase(Enum):
    """Lifecycle phase of a session."""

    IDLE = "idle"
    ROLE_CHOSEN = "role_chosen"
    NEGOTIATING = "negotiating"
    CODE_READY = "code_ready"
    AWAITING_REMOTE = "awaiting_remote"
    CONNECTED = "connected"
    CHATTING = "chatting"
    CALLING = "calling"
    CLOSED = "closed"


@dataclass(frozen=True)
class Candidate:
    """Serialisable ICE candidate container, in ``RTCIceCandidateInit`` form."""

    candidate: str
    sdp_mid: Optional[str] = None
    sdp_mline_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidate": self.candidate,
            "sdpMid": self.sdp_mid,
            "sdpMLineIndex": self.sdp_mline_index,
        }


@dataclass(frozen=True)
class SessionDescription:
    """An offer or answer exactly as the engine produced it."""

    type: str
    sdp: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "sdp": self.sdp}


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ConnectionCode:
    """Immutable snapshot of one negotiation round."""

    role: Role
    description: SessionDescription
    candidates: Tuple[Candidate, ...] = ()
    created_at: int = field(default_factory=_now_ms)

    def __post_init__(self):
        if self.role is Role.UNASSIGNED:
            raise ValueError("a connection code needs an initiator or responder role")
        # Accept any sequence but store a tuple
        object.__setattr__(self, "candidates", tuple(self.candidates))
