from collections.abc import Callable
from dataclasses import dataclass
from typing import Final, Protocol, assert_never

from aws_lambda_powertools import Logger

from .errors import ActuatorDispatchError, HistoryStoreError
from .history_store import HistoryStore
from .metrics import SleepMetrics
from .models import (
    AudioKind,
    AudioNudge,
    BedMotorKind,
    BedMotorNudge,
    EnvironmentKind,
    EnvironmentNudge,
    HapticKind,
    HapticNudge,
    NudgeAction,
    SleepQuickAction,
)

logger = Logger(service="sleep-optimizer")

HAPTIC_INTENSITY: Final[dict[HapticKind, float]] = {
    HapticKind.GENTLE_PULSE: 0.3,
    HapticKind.STRONG_PULSE: 0.7,
}
DEFAULT_HEPA_MODE: Final[str] = "sleep"


class AudioHapticEngine(Protocol):
    def play_audio(self, kind: AudioKind) -> None: ...

    def stop_audio(self) -> None: ...

    def apply_haptic(self, intensity: float) -> None: ...


class EnvironmentController(Protocol):
    def adjust_temperature(self, target: float) -> None: ...

    def adjust_humidity(self, target: float) -> None: ...

    def adjust_lighting(self, level: float) -> None: ...

    def adjust_blinds(self, position: float) -> None: ...

    def set_hepa_filter(self, on: bool, mode: str) -> None: ...

    def clear_overrides(self) -> None: ...


class BedMotorController(Protocol):
    def adjust_head_elevation(self, value: float) -> None: ...

    def adjust_foot_elevation(self, value: float) -> None: ...

    def start_massage(self, intensity: float) -> None: ...

    def stop_massage(self) -> None: ...


@dataclass(frozen=True)
class DispatchOutcome:
    action: NudgeAction
    record: SleepQuickAction
    command: str
    delivered: bool
    persisted: bool = False
    error: str | None = None


class ActuatorDispatcher:
    """Routes a nudge to exactly one actuator domain and records the attempt.

    Actuator calls are fire-and-forget: a call returning means the command was
    accepted, not that the effect happened. A failing domain never blocks the
    others. Environment and bed commands carry absolute targets, so every repeat is
    sent again; re-applying a setpoint is safe and corrects one that never took.
    """

    def __init__(
        self,
        audio: AudioHapticEngine,
        environment: EnvironmentController,
        bed: BedMotorController,
        store: HistoryStore,
    ) -> None:
        self._audio = audio
        self._environment = environment
        self._bed = bed
        self._store = store

    def _route(self, action: NudgeAction) -> tuple[str, str, Callable[[], None]]:
        """Return (domain, command, call) for the single actuator call an action maps to."""
        if isinstance(action, AudioNudge):
            kind = action.kind
            return "audio", "play_audio", lambda: self._audio.play_audio(kind)
        if isinstance(action, HapticNudge):
            intensity = HAPTIC_INTENSITY[action.kind]
            return "haptic", "apply_haptic", lambda: self._audio.apply_haptic(intensity)
        if isinstance(action, EnvironmentNudge):
            return self._route_environment(action)
        if isinstance(action, BedMotorNudge):
            return self._route_bed(action)
        assert_never(action)

    def _route_environment(self, action: EnvironmentNudge) -> tuple[str, str, Callable[[], None]]:
        env = self._environment
        target = action.target
        kind = action.kind
        if kind is EnvironmentKind.LOWER_TEMPERATURE:
            return "environment", "adjust_temperature", lambda: env.adjust_temperature(target)
        if kind is EnvironmentKind.RAISE_HUMIDITY:
            return "environment", "adjust_humidity", lambda: env.adjust_humidity(target)
        if kind is EnvironmentKind.DIM_LIGHTS:
            return "environment", "adjust_lighting", lambda: env.adjust_lighting(target)
        if kind is EnvironmentKind.CLOSE_BLINDS:
            return "environment", "adjust_blinds", lambda: env.adjust_blinds(target)
        mode = action.mode or DEFAULT_HEPA_MODE
        if kind is EnvironmentKind.START_HEPA_FILTER:
            return "environment", "set_hepa_filter", lambda: env.set_hepa_filter(True, mode)
        if kind is EnvironmentKind.STOP_HEPA_FILTER:
            return "environment", "set_hepa_filter", lambda: env.set_hepa_filter(False, mode)
        assert_never(kind)

    def _route_bed(self, action: BedMotorNudge) -> tuple[str, str, Callable[[], None]]:
        bed = self._bed
        target = action.target
        kind = action.kind
        if kind is BedMotorKind.ADJUST_HEAD:
            return "bedMotor", "adjust_head_elevation", lambda: bed.adjust_head_elevation(target)
        if kind is BedMotorKind.ADJUST_FOOT:
            return "bedMotor", "adjust_foot_elevation", lambda: bed.adjust_foot_elevation(target)
        if kind is BedMotorKind.START_MASSAGE:
            return "bedMotor", "start_massage", lambda: bed.start_massage(target)
        if kind is BedMotorKind.STOP_MASSAGE:
            return "bedMotor", "stop_massage", lambda: bed.stop_massage()
        assert_never(kind)

    def _send(self, action: NudgeAction) -> tuple[str, bool, str | None]:
        """Invoke the actuator. Returns (command, delivered, error)."""
        domain, command, call = self._route(action)
        key = f"{domain}.{command}"
        try:
            call()
        except Exception as exc:
            err = ActuatorDispatchError(domain, command, exc)
            logger.error("actuator_dispatch_failed", command=key, error=str(err))
            return command, False, str(err)
        logger.info("actuator_command_sent", command=key, action=action.describe(), reason=action.reason)
        return command, True, None

    def dispatch(self, action: NudgeAction, metrics: SleepMetrics) -> DispatchOutcome:
        command, delivered, error = self._send(action)

        # Recorded whether or not the actuator accepted it
        metrics.add_intervention(action)

        persisted = False
        record = SleepQuickAction.from_action(action)
        try:
            self._store.save(record)
            persisted = True
        except HistoryStoreError as exc:
            logger.warning("quick_action_persist_failed", action_id=record.id, error=str(exc))
        except Exception:
            # Third-party stores; the in-memory record is kept either way
            logger.exception("quick_action_persist_failed", action_id=record.id)

        return DispatchOutcome(
            action=action,
            record=record,
            command=command,
            delivered=delivered,
            persisted=persisted,
            error=error,
        )

    def return_to_baseline(self) -> list[str]:
        """Stop audio, environment overrides and massage. Returns commands that failed."""
        failed: list[str] = []
        for name, call in (
            ("audio.stop_audio", self._audio.stop_audio),
            ("environment.clear_overrides", self._environment.clear_overrides),
            ("bedMotor.stop_massage", self._bed.stop_massage),
        ):
            try:
                call()
            except Exception as exc:
                logger.error("baseline_command_failed", command=name, error=str(exc))
                failed.append(name)
        return failed
