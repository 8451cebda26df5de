"""Shared pytest fixtures for gateway and tutor service tests.

Provides:
- ``clock``: manually advanced monotonic clock
- ``sleep``: recording no-op sleep that advances ``clock``
- ``secondary``: call-counting secondary provider stub
- ``make_gateway``: factory for isolated ProviderGateway instances
"""

from __future__ import annotations

import pytest

from models.gateway import FallbackSpec
from services.gateway import ProviderGateway
from services.provider_state import CooldownTracker, GatewayState, UploadCache
from tests.stubs import (
    PRIMARY_MODELS,
    SECONDARY_MODELS,
    FakeClock,
    RecordingSleep,
    StubSecondary,
    StubUploader,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep(clock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture
def secondary() -> StubSecondary:
    return StubSecondary()


@pytest.fixture
def fallback() -> FallbackSpec:
    return FallbackSpec(
        system_prompt="Tu es un tuteur.",
        messages=[{"role": "user", "content": "Bonjour"}],
    )


@pytest.fixture
def make_gateway(clock, sleep, secondary):
    """Build an isolated gateway; keyword arguments override the defaults."""

    def _make(**overrides) -> ProviderGateway:
        kwargs = dict(
            primary_models=PRIMARY_MODELS,
            secondary_models=SECONDARY_MODELS,
            secondary=secondary,
            uploader=StubUploader(),
            state=GatewayState(
                cooldowns=CooldownTracker(clock=clock),
                uploads=UploadCache(clock=clock),
            ),
            sleep=sleep,
            clock=clock,
        )
        kwargs.update(overrides)
        return ProviderGateway(**kwargs)

    return _make
