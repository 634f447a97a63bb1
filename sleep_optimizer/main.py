import signal
import threading
from collections.abc import Callable
from typing import Any

from aws_lambda_powertools import Logger

from .actuators import ActuatorDispatcher
from .classifier import StageClassifier
from .config import EnvironmentSource, Settings, load_settings
from .controller import SleepOptimizer
from .helpers import make_environment_reader
from .history_store import HistoryStore, SqliteHistoryStore
from .hub_client import SleepHubClient
from .metrics import MetricsSnapshot
from .policy import DecisionPolicy

logger = Logger(service="sleep-optimizer")


def _setup_logging(level: str) -> None:
    logger.setLevel(level.upper())


def build_optimizer(
    settings: Settings,
    hub: SleepHubClient | None = None,
    store: HistoryStore | None = None,
) -> SleepOptimizer:
    hub = hub or SleepHubClient(
        base_url=settings.hub_url,
        token=settings.hub_token,
        user_agent=settings.user_agent,
        timeout=settings.http_timeout_secs,
    )
    store = store or SqliteHistoryStore(settings.history_db_path)

    sources: list[Callable[[], dict[str, Any]]] = [hub.environment_reading]
    if settings.environment_source is EnvironmentSource.SENSORS:
        # Needs the "sensors" extra; local readings override the hub's
        from .room_sensors import RoomSensors

        room = RoomSensors(
            settings.i2c_bus,
            settings.bme680_i2c_address,
            settings.veml6030_i2c_address,
            light_full_scale_lux=settings.light_full_scale_lux,
        )
        sources.append(room.read)

    return SleepOptimizer(
        read_vitals=hub.get_vitals,
        read_environment=make_environment_reader(*sources),
        classifier=StageClassifier(hub.classify),
        policy=DecisionPolicy(hub.decide),
        dispatcher=ActuatorDispatcher(audio=hub, environment=hub, bed=hub, store=store),
        store=store,
        tick_seconds=settings.tick_interval_secs,
    )


def run(settings: Settings, shutdown: threading.Event) -> MetricsSnapshot | None:
    """Run one session until ``shutdown`` is set. Returns the session's metrics."""
    store = SqliteHistoryStore(settings.history_db_path)
    try:
        optimizer = build_optimizer(settings, store=store)
        logger.info(
            "optimizer_starting",
            hub=settings.hub_url,
            tick_seconds=settings.tick_interval_secs,
            environment_source=settings.environment_source.value,
        )
        optimizer.start()
        shutdown.wait()
        optimizer.stop()
        return optimizer.last_session
    finally:
        store.close()


def main() -> None:
    settings = load_settings()
    _setup_logging(settings.log_level)

    shutdown = threading.Event()

    def _request_shutdown(signum: int, _frame: object) -> None:
        logger.info("shutdown_requested", signal=signum)
        shutdown.set()

    signal.signal(signal.SIGTERM, _request_shutdown)
    signal.signal(signal.SIGINT, _request_shutdown)

    summary = run(settings, shutdown)
    if summary is not None:
        logger.info(
            "session_summary",
            total_sleep_time=summary.total_sleep_time,
            deep_sleep_percentage=round(summary.deep_sleep_percentage, 3),
            rem_sleep_percentage=round(summary.rem_sleep_percentage, 3),
            interventions=len(summary.interventions),
        )


if __name__ == "__main__":
    main()
