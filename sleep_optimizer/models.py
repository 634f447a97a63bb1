import re
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Final, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator


class SleepStageType(StrEnum):
    AWAKE = "awake"
    LIGHT_SLEEP = "lightSleep"
    DEEP_SLEEP = "deepSleep"
    REM_SLEEP = "remSleep"
    UNKNOWN = "unknown"

    @property
    def display_name(self) -> str:
        return _STAGE_DISPLAY_NAMES[self]

    @property
    def is_asleep(self) -> bool:
        return self in ASLEEP_STAGES


_STAGE_DISPLAY_NAMES: Final[dict[SleepStageType, str]] = {
    SleepStageType.AWAKE: "Awake",
    SleepStageType.LIGHT_SLEEP: "Light Sleep",
    SleepStageType.DEEP_SLEEP: "Deep Sleep",
    SleepStageType.REM_SLEEP: "REM Sleep",
    SleepStageType.UNKNOWN: "Unknown",
}

ASLEEP_STAGES: Final[frozenset[SleepStageType]] = frozenset(
    {SleepStageType.LIGHT_SLEEP, SleepStageType.DEEP_SLEEP, SleepStageType.REM_SLEEP}
)
# Stages a successful classification may produce
CONCRETE_STAGES: Final[tuple[SleepStageType, ...]] = (
    SleepStageType.AWAKE,
    SleepStageType.LIGHT_SLEEP,
    SleepStageType.DEEP_SLEEP,
    SleepStageType.REM_SLEEP,
)


class Vitals(BaseModel):
    heart_rate: float = Field(ge=0)
    hrv: float = Field(ge=0)
    spo2: float | None = None
    body_temperature: float | None = None


class EnvironmentSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    temperature: float
    humidity: float
    noise_level: float = Field(default=0.0, ge=0.0, le=1.0)
    light_level: float = Field(default=0.0, ge=0.0, le=1.0)
    bed_incline: float = 0.0


class SleepState(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: SleepStageType
    hrv: float
    heart_rate: float
    time_in_stage: float = 0.0  # seconds


class AudioKind(StrEnum):
    PINK_NOISE = "pinkNoise"
    ISOCHRONIC_TONES = "isochronicTones"
    BINAURAL_BEATS = "binauralBeats"
    NATURE_SOUNDS = "natureSounds"


class HapticKind(StrEnum):
    GENTLE_PULSE = "gentlePulse"
    STRONG_PULSE = "strongPulse"


class EnvironmentKind(StrEnum):
    LOWER_TEMPERATURE = "lowerTemperature"
    RAISE_HUMIDITY = "raiseHumidity"
    DIM_LIGHTS = "dimLights"
    CLOSE_BLINDS = "closeBlinds"
    START_HEPA_FILTER = "startHEPAFilter"
    STOP_HEPA_FILTER = "stopHEPAFilter"


class BedMotorKind(StrEnum):
    ADJUST_HEAD = "adjustHead"
    ADJUST_FOOT = "adjustFoot"
    START_MASSAGE = "startMassage"
    STOP_MASSAGE = "stopMassage"


_ENVIRONMENT_KINDS_WITH_TARGET: Final[frozenset[EnvironmentKind]] = frozenset(
    {
        EnvironmentKind.LOWER_TEMPERATURE,
        EnvironmentKind.RAISE_HUMIDITY,
        EnvironmentKind.DIM_LIGHTS,
        EnvironmentKind.CLOSE_BLINDS,
    }
)
_BED_KINDS_WITH_TARGET: Final[frozenset[BedMotorKind]] = frozenset(
    {BedMotorKind.ADJUST_HEAD, BedMotorKind.ADJUST_FOOT, BedMotorKind.START_MASSAGE}
)


def _humanize(value: str) -> str:
    # "startHEPAFilter" -> "Start HEPA Filter"
    spaced = re.sub(r"(?<=[a-z])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", " ", value)
    return spaced[:1].upper() + spaced[1:]


class _Nudge(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: str

    @field_validator("reason")
    @classmethod
    def _reason_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("reason must not be empty")
        return value


class AudioNudge(_Nudge):
    domain: Literal["audio"] = "audio"
    kind: AudioKind

    def describe(self) -> str:
        return f"Audio: {_humanize(self.kind.value)}"


class HapticNudge(_Nudge):
    domain: Literal["haptic"] = "haptic"
    kind: HapticKind

    def describe(self) -> str:
        return f"Haptic: {_humanize(self.kind.value)}"


class EnvironmentNudge(_Nudge):
    domain: Literal["environment"] = "environment"
    kind: EnvironmentKind
    target: float | None = None
    mode: str | None = None  # HEPA filter mode

    @model_validator(mode="after")
    def _target_required(self) -> "EnvironmentNudge":
        if self.kind in _ENVIRONMENT_KINDS_WITH_TARGET and self.target is None:
            raise ValueError(f"{self.kind.value} requires a target value")
        return self

    def describe(self) -> str:
        return f"Environment: {_humanize(self.kind.value)}"


class BedMotorNudge(_Nudge):
    domain: Literal["bedMotor"] = "bedMotor"
    kind: BedMotorKind
    target: float | None = None

    @model_validator(mode="after")
    def _target_required(self) -> "BedMotorNudge":
        if self.kind in _BED_KINDS_WITH_TARGET and self.target is None:
            raise ValueError(f"{self.kind.value} requires a target value")
        return self

    def describe(self) -> str:
        return f"Bed Motor: {_humanize(self.kind.value)}"


NudgeAction = Annotated[
    AudioNudge | HapticNudge | EnvironmentNudge | BedMotorNudge,
    Field(discriminator="domain"),
]
NUDGE_ACTION_ADAPTER: TypeAdapter[NudgeAction] = TypeAdapter(NudgeAction)


class SleepQuickAction(BaseModel):
    """Durable record of one dispatched nudge. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime
    action_type: str
    action_details: str
    reason: str

    @field_validator("timestamp")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are treated as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    @classmethod
    def from_action(cls, action: NudgeAction, timestamp: datetime | None = None) -> "SleepQuickAction":
        return cls(
            timestamp=timestamp or datetime.now(UTC),
            action_type=action.domain,
            action_details=action.model_dump_json(exclude_none=True),
            reason=action.reason,
        )

    def to_action(self) -> NudgeAction:
        return NUDGE_ACTION_ADAPTER.validate_json(self.action_details)
