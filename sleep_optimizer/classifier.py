import math
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Final

from aws_lambda_powertools import Logger

from .errors import ClassificationError
from .models import SleepStageType, Vitals

logger = Logger(service="sleep-optimizer")

# Accepted inference labels, compared after lower-casing and dropping separators
LABEL_TO_STAGE: Final[dict[str, SleepStageType]] = {
    "awake": SleepStageType.AWAKE,
    "wake": SleepStageType.AWAKE,
    "light": SleepStageType.LIGHT_SLEEP,
    "lightsleep": SleepStageType.LIGHT_SLEEP,
    "deep": SleepStageType.DEEP_SLEEP,
    "deepsleep": SleepStageType.DEEP_SLEEP,
    "rem": SleepStageType.REM_SLEEP,
    "remsleep": SleepStageType.REM_SLEEP,
}


def circadian_phase(now: datetime) -> float:
    """Local time of day as a fraction of 24h, in [0, 1)."""
    seconds = now.hour * 3600 + now.minute * 60 + now.second
    return seconds / 86_400


@dataclass(frozen=True)
class StageFeatures:
    heart_rate: float
    hrv: float
    spo2: float | None
    body_temperature: float | None
    circadian_phase: float

    @classmethod
    def from_vitals(cls, vitals: Vitals, now: datetime) -> "StageFeatures":
        return cls(
            heart_rate=vitals.heart_rate,
            hrv=vitals.hrv,
            spo2=vitals.spo2,
            body_temperature=vitals.body_temperature,
            circadian_phase=circadian_phase(now),
        )

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def stage_from_label(label: object) -> SleepStageType | None:
    if not isinstance(label, str):
        return None
    key = label.strip().lower().replace("_", "").replace("-", "").replace(" ", "")
    return LABEL_TO_STAGE.get(key)


def _check_features(features: StageFeatures) -> None:
    for name in ("heart_rate", "hrv"):
        value = getattr(features, name)
        if not math.isfinite(value) or value < 0:
            raise ClassificationError(f"invalid feature {name}={value!r}")
    for name in ("spo2", "body_temperature"):
        value = getattr(features, name)
        if value is not None and not math.isfinite(value):
            raise ClassificationError(f"invalid feature {name}={value!r}")


class StageClassifier:
    """Adapts an opaque inference function to a concrete sleep stage.

    ``infer`` receives the feature vector and returns a stage label. Success always
    yields one of awake/lightSleep/deepSleep/remSleep. Anything else (a raised
    error, an unmapped label, or ``unknown``) raises ClassificationError so the
    caller can keep the last known stage instead of guessing.
    """

    def __init__(self, infer: Callable[[StageFeatures], object]) -> None:
        self._infer = infer

    def classify(self, features: StageFeatures) -> SleepStageType:
        _check_features(features)
        try:
            label = self._infer(features)
        except Exception as exc:
            raise ClassificationError(f"inference failed: {exc}") from exc

        stage = stage_from_label(label)
        if stage is None:
            raise ClassificationError(f"unmapped stage label: {label!r}")
        logger.debug("stage_classified", label=label, stage=stage.value)
        return stage
