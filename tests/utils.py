"""
Test utilities for the Sunny Side tests.
"""
import asyncio

from sunny_side.config import Settings


async def settle(rounds: int = 20) -> None:
    """Let queued engine events reach the session."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_settings(**overrides) -> Settings:
    """Settings with no reachability servers and a short gathering timeout."""
    values = {
        "ICE_SERVERS": [],
        "GATHER_TIMEOUT_MS": 200,
        "AUDIO_FORMAT": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)
