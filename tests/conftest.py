from collections.abc import Callable, Iterator
from typing import Any

import pytest

from sleep_optimizer.actuators import ActuatorDispatcher
from sleep_optimizer.classifier import StageClassifier, StageFeatures
from sleep_optimizer.controller import SleepOptimizer
from sleep_optimizer.models import EnvironmentSnapshot, Vitals
from sleep_optimizer.policy import DecisionPolicy, null_policy

from .fakes import DEFAULT_ENVIRONMENT, FakeStore, FakeTicker, RecordingActuators, ScriptedInference


@pytest.fixture
def actuators() -> RecordingActuators:
    return RecordingActuators()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def dispatcher(actuators: RecordingActuators, store: FakeStore) -> ActuatorDispatcher:
    return ActuatorDispatcher(audio=actuators, environment=actuators, bed=actuators, store=store)


@pytest.fixture
def make_optimizer(
    dispatcher: ActuatorDispatcher, store: FakeStore
) -> Iterator[Callable[..., SleepOptimizer]]:
    tickers: list[FakeTicker] = []

    def _ticker(period: float, on_tick: Callable[[], None]) -> FakeTicker:
        t = FakeTicker(period, on_tick)
        tickers.append(t)
        return t

    def _make(
        inference: Callable[[StageFeatures], Any] | None = None,
        decide: Callable[..., Any] = null_policy,
        read_vitals: Callable[[], Vitals] | None = None,
        read_environment: Callable[[], EnvironmentSnapshot] | None = None,
        tick_seconds: float = 30.0,
    ) -> SleepOptimizer:
        return SleepOptimizer(
            read_vitals=read_vitals or (lambda: Vitals(heart_rate=55, hrv=80, spo2=97, body_temperature=36.4)),
            read_environment=read_environment or (lambda: DEFAULT_ENVIRONMENT),
            classifier=StageClassifier(inference or ScriptedInference("light")),
            policy=DecisionPolicy(decide),
            dispatcher=dispatcher,
            store=store,
            tick_seconds=tick_seconds,
            ticker_factory=_ticker,  # type: ignore[arg-type]
        )

    _make.tickers = tickers  # type: ignore[attr-defined]
    yield _make
