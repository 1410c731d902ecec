"""
Sunny Side - serverless peer-to-peer chat and voice calls
"""

__version__ = "1.0.0"
__author__ = "Scrambled Eggs Team"
__license__ = "MIT"

from .exceptions import (
    AlreadyInProgress,
    CandidateApplyFailed,
    ChannelNotReady,
    DescriptionCreationFailed,
    EngineCreationFailed,
    InvalidRemoteCode,
    InvalidSessionState,
    MediaAccessDenied,
    RemoteDescriptionRejected,
    RoleNotSet,
    SessionError,
)
from .p2p import Role, SessionPhase, SessionStateMachine

__all__ = [
    "SessionStateMachine",
    "Role",
    "SessionPhase",
    "SessionError",
    "InvalidSessionState",
    "RoleNotSet",
    "AlreadyInProgress",
    "EngineCreationFailed",
    "DescriptionCreationFailed",
    "InvalidRemoteCode",
    "RemoteDescriptionRejected",
    "CandidateApplyFailed",
    "MediaAccessDenied",
    "ChannelNotReady",
]
