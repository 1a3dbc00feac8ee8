from __future__ import annotations

from collections.abc import Generator

import fakeredis
import pytest
from fastapi.testclient import TestClient

from puzzle_ladder.config import GameSettings
from puzzle_ladder.core.event_bus import EventBus
from puzzle_ladder.engine import SessionEngine
from puzzle_ladder.infra.storage import RedisKeyValueStore
from puzzle_ladder.profiles import ProfileStore
from puzzle_ladder.runtime import GameRuntime, build_runtime

from tests.helpers import EventRecorder, FakeClock, ScriptedProvider


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def kv(r: fakeredis.FakeRedis) -> RedisKeyValueStore:
    return RedisKeyValueStore(r)


@pytest.fixture()
def bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def recorder(bus: EventBus) -> EventRecorder:
    return EventRecorder(bus)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings() -> GameSettings:
    return GameSettings(next_puzzle_delay_s=0)


@pytest.fixture()
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture()
def profiles(bus: EventBus, kv: RedisKeyValueStore, settings: GameSettings, clock: FakeClock) -> ProfileStore:
    return ProfileStore(bus=bus, store=kv, settings=settings, clock=clock)


@pytest.fixture()
def engine(
    bus: EventBus,
    profiles: ProfileStore,
    provider: ScriptedProvider,
    settings: GameSettings,
    clock: FakeClock,
) -> SessionEngine:
    return SessionEngine(bus=bus, profiles=profiles, provider=provider, settings=settings, clock=clock)


@pytest.fixture()
def runtime(kv: RedisKeyValueStore, provider: ScriptedProvider) -> GameRuntime:
    return build_runtime(store=kv, provider=provider, settings=GameSettings(max_position=2, next_puzzle_delay_s=0))


@pytest.fixture()
def client(runtime: GameRuntime) -> Generator[TestClient, None, None]:
    from puzzle_ladder.main import create_app

    with TestClient(create_app(runtime)) as c:
        yield c
