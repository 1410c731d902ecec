"""
Connection Code Codec
---------------------
Turns a :class:`ConnectionCode` into a copy/paste-safe text token and back.

The token is canonical JSON, encoded to UTF-8 bytes first and then to
URL-safe base64 without padding. Decoding is total: any input either yields a
well-formed code or raises :class:`InvalidRemoteCode`.
"""
import base64
import binascii
import json
import logging
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..exceptions import InvalidRemoteCode
from .models import Candidate, ConnectionCode, Role, SessionDescription

logger = logging.getLogger(__name__)

CODE_VERSION = 1

# Spellings used by older clients
ROLE_ALIASES = {
    "initiator": Role.INITIATOR,
    "caller": Role.INITIATOR,
    "responder": Role.RESPONDER,
    "callee": Role.RESPONDER,
}


class CandidatePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    candidate: str
    sdpMid: Optional[str] = None
    sdpMLineIndex: Optional[int] = Field(default=None, ge=0)


class DescriptionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["offer", "answer", "pranswer"]
    sdp: str = Field(min_length=1)


class CodePayload(BaseModel):
    """Wire shape of a connection code."""

    model_config = ConfigDict(extra="ignore")

    v: int = CODE_VERSION
    role: str
    sdp: DescriptionPayload
    iceCandidates: List[CandidatePayload] = Field(default_factory=list)
    timestamp: int = Field(default=0, ge=0)

    @field_validator("role")
    @classmethod
    def _known_role(cls, value: str) -> str:
        if value.lower() not in ROLE_ALIASES:
            raise ValueError(f"unknown role {value!r}")
        return value.lower()

    @field_validator("v")
    @classmethod
    def _supported_version(cls, value: int) -> int:
        if value < 1 or value > CODE_VERSION:
            raise ValueError(f"unsupported code version {value}")
        return value


def encode(code: ConnectionCode) -> str:
    """Serialise a connection code to a portable text token."""
    payload = {
        "v": CODE_VERSION,
        "role": code.role.value,
        "sdp": code.description.to_dict(),
        "iceCandidates": [candidate.to_dict() for candidate in code.candidates],
        "timestamp": code.created_at,
    }
    text = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    raw = text.encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _to_bytes(token: str) -> bytes:
    # Pasted codes often pick up line breaks or lose their padding
    compact = "".join(token.split())
    if not compact:
        raise InvalidRemoteCode("The connection code is empty")
    compact = compact.replace("+", "-").replace("/", "_")
    compact += "=" * (-len(compact) % 4)
    try:
        return base64.b64decode(compact, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidRemoteCode("The connection code is not valid base64") from e


def decode(token: str) -> ConnectionCode:
    """Parse a text token produced by :func:`encode`.

    Raises:
        InvalidRemoteCode: if the token is malformed in any way
    """
    if not isinstance(token, str):
        raise InvalidRemoteCode("The connection code must be text")

    raw = _to_bytes(token)
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError, RecursionError) as e:
        raise InvalidRemoteCode("The connection code is corrupted") from e

    try:
        payload = CodePayload.model_validate(data)
    except ValidationError as e:
        logger.debug(f"Rejected connection code: {e}")
        raise InvalidRemoteCode("The connection code is incomplete") from e

    return ConnectionCode(
        role=ROLE_ALIASES[payload.role],
        description=SessionDescription(type=payload.sdp.type, sdp=payload.sdp.sdp),
        candidates=tuple(
            Candidate(
                candidate=c.candidate,
                sdp_mid=c.sdpMid,
                sdp_mline_index=c.sdpMLineIndex,
            )
            for c in payload.iceCandidates
        ),
        created_at=payload.timestamp,
    )
