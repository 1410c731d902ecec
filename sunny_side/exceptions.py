"""
Custom exceptions for Sunny Side sessions.

Every error carries a short message suitable for showing to the user.
"""


class SessionError(Exception):
    """Base class for all session errors."""

    user_message = "Connection error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.user_message)
        if message:
            self.user_message = message


class InvalidSessionState(SessionError):
    """Raised when an operation is not allowed in the current phase."""

    user_message = "Not possible right now"


class RoleNotSet(SessionError):
    """Raised when negotiating before a role was chosen."""

    user_message = "Choose a role first (initiator or responder)"


class AlreadyInProgress(SessionError):
    """Raised when a second negotiation starts while one is in flight."""

    user_message = "Already generating a code"


class EngineCreationFailed(SessionError):
    """Raised when the negotiation engine cannot be created."""

    user_message = "Could not create a peer connection"


class DescriptionCreationFailed(SessionError):
    """Raised when an offer or answer cannot be created or set."""

    user_message = "Could not create the session description"


class InvalidRemoteCode(SessionError):
    """Raised when a connection code cannot be decoded or used."""

    user_message = "Invalid connection code"


class RemoteDescriptionRejected(SessionError):
    """Raised when the engine refuses the peer's session description."""

    user_message = "The peer's connection code was rejected"


class CandidateApplyFailed(SessionError):
    """Raised when a single remote candidate cannot be applied.

    Never aborts a negotiation; callers log it and continue.
    """

    user_message = "Could not apply a network candidate"


class MediaAccessDenied(SessionError):
    """Raised when the microphone cannot be opened."""

    user_message = "Microphone access failed"


class ChannelNotReady(SessionError):
    """Returned when sending on a chat channel that is not open."""

    user_message = "Chat is not connected yet"
