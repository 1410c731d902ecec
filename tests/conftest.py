"""
Test configuration and fixtures for the Sunny Side tests.
"""

import logging
import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sunny_side.display import DisplayLog
from sunny_side.p2p.session import SessionStateMachine
from tests.mocks.mock_engine import MockEngineFactory
from tests.mocks.mock_media import MockCapture, MockPlayback
from tests.utils import make_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

# Set up test logger
logger = logging.getLogger(__name__)


# Fixtures
@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def engine_factory():
    return MockEngineFactory()


@pytest.fixture
def capture():
    return MockCapture()


@pytest.fixture
def playback():
    return MockPlayback()


@pytest.fixture
def display():
    return DisplayLog()


@pytest.fixture
def session(settings, engine_factory, capture, playback, display):
    """A session wired to mock engine and media."""
    return SessionStateMachine(
        settings,
        engine_factory=engine_factory,
        capture=capture,
        playback=playback,
        display=display,
    )


@pytest.fixture
def make_session(settings):
    """Build additional sessions, each with its own mocks."""

    def _make(session_settings=None, **engine_options):
        return SessionStateMachine(
            session_settings or settings,
            engine_factory=MockEngineFactory(**engine_options),
            capture=MockCapture(),
            playback=MockPlayback(),
            display=DisplayLog(),
        )

    return _make
