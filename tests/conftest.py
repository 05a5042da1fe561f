"""Pytest configuration and fixtures."""

import random
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio

from attune_core.config import MemoryConfig, Settings
from attune_core.conversation.flow import ConversationFlowStateMachine
from attune_core.conversation.scheduler import VirtualClock
from attune_core.engine.memory import SessionMemoryStore
from attune_core.engine.pipeline import DialogueEngine
from attune_core.models import SessionSnapshot


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Default settings."""
    return Settings()


@pytest.fixture
def memory_config() -> MemoryConfig:
    """Short timeouts for sweep tests."""
    return MemoryConfig(inactivity_timeout_ms=1000, sweep_interval_ms=100)


# =============================================================================
# Clock and Store Fixtures
# =============================================================================


@pytest.fixture
def virtual_clock() -> VirtualClock:
    """Manually advanced clock starting at t=0."""
    return VirtualClock()


@pytest.fixture
def store(virtual_clock: VirtualClock) -> SessionMemoryStore:
    """Session store driven by the virtual clock."""
    return SessionMemoryStore(MemoryConfig(), clock=virtual_clock)


@pytest.fixture
def flow_machine(settings: Settings) -> ConversationFlowStateMachine:
    """Flow state machine with a seeded jitter source."""
    return ConversationFlowStateMachine(settings.flow, rng=random.Random(0))


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def engine(
    settings: Settings,
    virtual_clock: VirtualClock,
) -> AsyncGenerator[DialogueEngine, None]:
    """Initialized dialogue engine on the virtual clock."""
    dialogue_engine = DialogueEngine(
        settings=settings,
        clock=virtual_clock,
        flow=ConversationFlowStateMachine(settings.flow, rng=random.Random(0)),
    )
    await dialogue_engine.initialize()
    yield dialogue_engine
    await dialogue_engine.shutdown()


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
def session_id() -> str:
    """Generate a test session ID."""
    return str(uuid4())


@pytest.fixture
def snapshot(session_id: str) -> SessionSnapshot:
    """Snapshot of a session a few turns in."""
    return SessionSnapshot(session_id=session_id, turn_number=3)
