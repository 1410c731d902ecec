"""
P2P Module for Sunny Side.

This package contains the connection negotiation logic: the session state
machine, the offer/answer negotiator, candidate gathering, the connection
code codec, and the chat and call adapters built on the negotiated link.
"""

from .call import CallController
from .codec import decode, encode
from .data_channel import ChannelState, ChatChannel
from .engine import AiortcEngine, EngineEvent, EngineEventType, NegotiationEngine
from .gatherer import CandidateGatherer
from .models import Candidate, ConnectionCode, Role, SessionDescription, SessionPhase
from .negotiator import SessionNegotiator
from .session import SessionStateMachine

__all__ = [
    "SessionStateMachine",
    "SessionNegotiator",
    "CandidateGatherer",
    "ChatChannel",
    "ChannelState",
    "CallController",
    "NegotiationEngine",
    "AiortcEngine",
    "EngineEvent",
    "EngineEventType",
    "Candidate",
    "ConnectionCode",
    "Role",
    "SessionDescription",
    "SessionPhase",
    "encode",
    "decode",
]
