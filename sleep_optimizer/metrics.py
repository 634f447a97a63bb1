from pydantic import BaseModel, ConfigDict

from .models import ASLEEP_STAGES, NudgeAction, SleepStageType


def quality_score(hrv: float, heart_rate: float) -> float:
    """Sleep quality in [0, 1]: mean of an HRV term and a resting heart-rate term."""
    hrv_term = min(1.0, max(0.0, hrv / 100.0))
    hr_term = min(1.0, max(0.0, 1.0 - (heart_rate - 60.0) / 40.0))
    return (hrv_term + hr_term) / 2.0


class MetricsSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    per_stage_duration: dict[SleepStageType, float]
    total_sleep_time: float
    tracked_time: float
    deep_sleep_percentage: float
    rem_sleep_percentage: float
    light_sleep_percentage: float
    awake_percentage: float
    sleep_efficiency: float
    interventions: tuple[NudgeAction, ...]


class SleepMetrics:
    """Per-session accumulator of time spent in each stage and of dispatched nudges.

    Durations are seconds. Every derived figure is recomputed from
    ``per_stage_duration`` on each call, never cached.
    """

    def __init__(self) -> None:
        self.per_stage_duration: dict[SleepStageType, float] = {stage: 0.0 for stage in SleepStageType}
        self.interventions: list[NudgeAction] = []

    def record(self, stage: SleepStageType, seconds: float) -> None:
        if seconds < 0:
            raise ValueError(f"tick duration must be non-negative, got {seconds}")
        self.per_stage_duration[stage] += seconds

    def add_intervention(self, action: NudgeAction) -> None:
        self.interventions.append(action)

    def duration(self, stage: SleepStageType) -> float:
        return self.per_stage_duration[stage]

    @property
    def total_recorded_time(self) -> float:
        return sum(self.per_stage_duration.values())

    @property
    def total_sleep_time(self) -> float:
        return sum(self.per_stage_duration[s] for s in ASLEEP_STAGES)

    @property
    def tracked_time(self) -> float:
        # Everything with a known stage, awake included
        return self.total_recorded_time - self.per_stage_duration[SleepStageType.UNKNOWN]

    def _share(self, stage: SleepStageType) -> float:
        tracked = self.tracked_time
        if tracked <= 0:
            return 0.0
        return self.per_stage_duration[stage] / tracked

    def deep_sleep_percentage(self) -> float:
        return self._share(SleepStageType.DEEP_SLEEP)

    def rem_sleep_percentage(self) -> float:
        return self._share(SleepStageType.REM_SLEEP)

    def light_sleep_percentage(self) -> float:
        return self._share(SleepStageType.LIGHT_SLEEP)

    def awake_percentage(self) -> float:
        return self._share(SleepStageType.AWAKE)

    def sleep_efficiency(self) -> float:
        tracked = self.tracked_time
        if tracked <= 0:
            return 0.0
        return self.total_sleep_time / tracked

    def snapshot(self) -> MetricsSnapshot:
        return MetricsSnapshot(
            per_stage_duration=dict(self.per_stage_duration),
            total_sleep_time=self.total_sleep_time,
            tracked_time=self.tracked_time,
            deep_sleep_percentage=self.deep_sleep_percentage(),
            rem_sleep_percentage=self.rem_sleep_percentage(),
            light_sleep_percentage=self.light_sleep_percentage(),
            awake_percentage=self.awake_percentage(),
            sleep_efficiency=self.sleep_efficiency(),
            interventions=tuple(self.interventions),
        )
