import threading
from collections.abc import Callable
from datetime import datetime

from aws_lambda_powertools import Logger
from pydantic import BaseModel, ConfigDict

from .actuators import ActuatorDispatcher
from .classifier import StageClassifier, StageFeatures
from .errors import ClassificationError, PolicyError, SignalUnavailableError
from .history_store import HistoryStore
from .metrics import MetricsSnapshot, SleepMetrics, quality_score
from .models import EnvironmentSnapshot, SleepQuickAction, SleepStageType, SleepState, Vitals
from .policy import DecisionPolicy
from .scheduler import Ticker

logger = Logger(service="sleep-optimizer")

DEFAULT_TICK_SECONDS = 30.0


class ControllerSnapshot(BaseModel):
    """Read-only view published once per tick."""

    model_config = ConfigDict(frozen=True)

    active: bool
    stage: SleepStageType
    quality: float
    sleep_state: SleepState | None
    environment: EnvironmentSnapshot | None
    metrics: MetricsSnapshot
    history: tuple[SleepQuickAction, ...]
    tick_count: int
    last_tick_at: datetime | None


def _local_now() -> datetime:
    return datetime.now().astimezone()


class SleepOptimizer:
    """Closed-loop controller: sample, classify, aggregate, decide, dispatch.

    All collaborators are injected. State is mutated only inside ``tick()``, which a
    lock serializes whoever calls it, and is published as an immutable
    ControllerSnapshot at the end of each tick. Observers should read
    ``snapshot()`` or ``subscribe()`` rather than the private fields.
    """

    def __init__(
        self,
        read_vitals: Callable[[], Vitals],
        read_environment: Callable[[], EnvironmentSnapshot],
        classifier: StageClassifier,
        policy: DecisionPolicy,
        dispatcher: ActuatorDispatcher,
        store: HistoryStore,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        now: Callable[[], datetime] = _local_now,
        ticker_factory: Callable[[float, Callable[[], None]], Ticker] = Ticker,
    ) -> None:
        self._read_vitals = read_vitals
        self._read_environment = read_environment
        self._classifier = classifier
        self._policy = policy
        self._dispatcher = dispatcher
        self._store = store
        self._tick_seconds = float(tick_seconds)
        self._now = now
        self._ticker_factory = ticker_factory
        self._ticker: Ticker | None = None
        self._tick_lock = threading.Lock()

        self._active = False
        self._history: list[SleepQuickAction] = []
        self._history_loaded = False
        self._subscribers: list[Callable[[ControllerSnapshot], None]] = []
        self.last_session: MetricsSnapshot | None = None
        self._reset_session()
        self._snapshot = self._build_snapshot()

    def _reset_session(self) -> None:
        self._metrics = SleepMetrics()
        self._stage = SleepStageType.UNKNOWN
        self._time_in_stage = 0.0
        self._quality = 0.0
        self._sleep_state: SleepState | None = None
        self._environment: EnvironmentSnapshot | None = None
        self._tick_count = 0
        self._last_tick_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def tick_seconds(self) -> float:
        return self._tick_seconds

    def snapshot(self) -> ControllerSnapshot:
        return self._snapshot

    @property
    def current_stage(self) -> SleepStageType:
        return self._snapshot.stage

    @property
    def sleep_quality(self) -> float:
        return self._snapshot.quality

    @property
    def metrics(self) -> MetricsSnapshot:
        return self._snapshot.metrics

    @property
    def history(self) -> tuple[SleepQuickAction, ...]:
        return self._snapshot.history

    def subscribe(self, callback: Callable[[ControllerSnapshot], None]) -> Callable[[], None]:
        """Register a callback run after every publish. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def start(self) -> None:
        if self._active:
            return
        self._load_history()
        self._reset_session()
        self._active = True
        self._publish()
        logger.info("session_started", tick_seconds=self._tick_seconds, history=len(self._history))
        self._ticker = self._ticker_factory(self._tick_seconds, self.tick)
        self._ticker.start()

    def stop(self) -> None:
        if not self._active:
            return
        ticker, self._ticker = self._ticker, None
        if ticker is not None:
            # Waits for an in-flight tick; no new tick fires after this
            ticker.stop()
        self._active = False
        failed = self._dispatcher.return_to_baseline()
        self.last_session = self._metrics.snapshot()
        self._publish()
        logger.info(
            "session_stopped",
            ticks=self._tick_count,
            total_sleep_time=self.last_session.total_sleep_time,
            baseline_failures=failed,
        )

    def _load_history(self) -> None:
        if self._history_loaded:
            return
        self._history_loaded = True
        try:
            self._history = list(self._store.load_all())
        except Exception as exc:
            logger.warning("history_load_failed", error=str(exc))
            self._history = []

    def tick(self) -> ControllerSnapshot:
        # Ticks never overlap; a call that arrives mid-tick is dropped
        if not self._tick_lock.acquire(blocking=False):
            logger.info("tick_skipped", reason="tick_in_progress", tick=self._tick_count)
            return self._snapshot
        try:
            if not self._active:
                return self._snapshot
            try:
                self._run_tick()
            except Exception:
                logger.exception("tick_failed", tick=self._tick_count)
            self._publish()
            logger.debug("tick_complete", tick=self._tick_count, stage=self._stage.value, quality=self._quality)
            return self._snapshot
        finally:
            self._tick_lock.release()

    def _run_tick(self) -> None:
        self._tick_count += 1
        self._last_tick_at = self._now()

        try:
            vitals = self._read_vitals()
            environment = self._read_environment()
        except Exception as exc:
            err = exc if isinstance(exc, SignalUnavailableError) else SignalUnavailableError(str(exc))
            logger.warning("signal_unavailable", tick=self._tick_count, error=str(err), stage=self._stage.value)
            self._credit(self._stage)
            return

        try:
            stage = self._classifier.classify(StageFeatures.from_vitals(vitals, self._last_tick_at))
        except ClassificationError as exc:
            logger.error("classification_failed", tick=self._tick_count, error=str(exc), stage=self._stage.value)
            stage = self._stage

        self._credit(stage)
        self._quality = quality_score(vitals.hrv, vitals.heart_rate)
        state = SleepState(
            stage=stage,
            hrv=vitals.hrv,
            heart_rate=vitals.heart_rate,
            time_in_stage=self._time_in_stage,
        )
        self._sleep_state = state
        self._environment = environment

        try:
            action = self._policy.decide(state, environment)
        except PolicyError as exc:
            logger.error("policy_failed", tick=self._tick_count, error=str(exc))
            return
        if action is None:
            return

        outcome = self._dispatcher.dispatch(action, self._metrics)
        self._history.append(outcome.record)
        logger.info(
            "nudge_dispatched",
            action=action.describe(),
            reason=action.reason,
            delivered=outcome.delivered,
            persisted=outcome.persisted,
        )

    def _credit(self, stage: SleepStageType) -> None:
        """Attribute one tick of elapsed time to ``stage``."""
        if stage != self._stage:
            logger.info("stage_changed", previous=self._stage.value, current=stage.value)
            self._stage = stage
            self._time_in_stage = 0.0
        self._metrics.record(stage, self._tick_seconds)
        self._time_in_stage += self._tick_seconds

    def _build_snapshot(self) -> ControllerSnapshot:
        return ControllerSnapshot(
            active=self._active,
            stage=self._stage,
            quality=self._quality,
            sleep_state=self._sleep_state,
            environment=self._environment,
            metrics=self._metrics.snapshot(),
            history=tuple(self._history),
            tick_count=self._tick_count,
            last_tick_at=self._last_tick_at,
        )

    def _publish(self) -> None:
        self._snapshot = self._build_snapshot()
        for callback in list(self._subscribers):
            try:
                callback(self._snapshot)
            except Exception:
                logger.exception("subscriber_failed")
