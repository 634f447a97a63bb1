import math

import pytest

from sleep_optimizer.metrics import SleepMetrics, quality_score
from sleep_optimizer.models import AudioKind, AudioNudge, SleepStageType

TICK = 30.0


def test_record_accumulates_per_stage() -> None:
    m = SleepMetrics()
    m.record(SleepStageType.DEEP_SLEEP, TICK)
    m.record(SleepStageType.DEEP_SLEEP, TICK)
    m.record(SleepStageType.REM_SLEEP, TICK)

    assert m.duration(SleepStageType.DEEP_SLEEP) == 60.0
    assert m.duration(SleepStageType.REM_SLEEP) == 30.0
    assert m.duration(SleepStageType.AWAKE) == 0.0


@pytest.mark.parametrize("n", [0, 1, 7, 120, 961])
def test_sum_of_durations_equals_ticks_times_period(n: int) -> None:
    stages = [s for s in SleepStageType if s is not SleepStageType.UNKNOWN]
    m = SleepMetrics()
    for i in range(n):
        m.record(stages[i % len(stages)], TICK)

    assert math.isclose(sum(m.per_stage_duration.values()), n * TICK)
    assert m.total_recorded_time >= m.total_sleep_time


def test_negative_duration_rejected() -> None:
    with pytest.raises(ValueError):
        SleepMetrics().record(SleepStageType.AWAKE, -1.0)


def test_quality_score_reference_values() -> None:
    # HRV term 0.8, heart-rate term clamps to 1.0 below 60 bpm
    assert quality_score(hrv=80, heart_rate=55) == pytest.approx(0.9)
    assert quality_score(hrv=50, heart_rate=80) == pytest.approx((0.5 + 0.5) / 2)
    assert quality_score(hrv=0, heart_rate=100) == 0.0
    assert quality_score(hrv=100, heart_rate=60) == 1.0


@pytest.mark.parametrize("hrv", [0.0, 1.0, 45.5, 100.0, 180.0, 10_000.0])
@pytest.mark.parametrize("heart_rate", [0.0, 30.0, 60.0, 75.0, 100.0, 140.0, 250.0])
def test_quality_score_is_bounded(hrv: float, heart_rate: float) -> None:
    assert 0.0 <= quality_score(hrv, heart_rate) <= 1.0


def test_percentages_sum_to_one_and_ignore_unknown() -> None:
    m = SleepMetrics()
    m.record(SleepStageType.UNKNOWN, 300)
    m.record(SleepStageType.AWAKE, 600)
    m.record(SleepStageType.LIGHT_SLEEP, 1800)
    m.record(SleepStageType.DEEP_SLEEP, 900)
    m.record(SleepStageType.REM_SLEEP, 300)

    total = m.deep_sleep_percentage() + m.rem_sleep_percentage() + m.light_sleep_percentage() + m.awake_percentage()
    assert total == pytest.approx(1.0)
    assert m.tracked_time == 3600
    assert m.deep_sleep_percentage() == pytest.approx(0.25)
    assert m.awake_percentage() == pytest.approx(600 / 3600)
    assert m.total_sleep_time == 3000
    assert m.sleep_efficiency() == pytest.approx(3000 / 3600)


def test_percentages_zero_without_tracked_time() -> None:
    m = SleepMetrics()
    m.record(SleepStageType.UNKNOWN, TICK)

    assert m.deep_sleep_percentage() == 0.0
    assert m.rem_sleep_percentage() == 0.0
    assert m.sleep_efficiency() == 0.0


def test_derived_values_are_idempotent() -> None:
    m = SleepMetrics()
    m.record(SleepStageType.DEEP_SLEEP, TICK)
    m.record(SleepStageType.REM_SLEEP, TICK)
    m.record(SleepStageType.AWAKE, TICK)

    first = m.snapshot()
    second = m.snapshot()
    assert first == second
    assert m.deep_sleep_percentage() == m.deep_sleep_percentage()


def test_snapshot_is_detached_from_accumulator() -> None:
    m = SleepMetrics()
    m.add_intervention(AudioNudge(kind=AudioKind.PINK_NOISE, reason="restless"))
    snap = m.snapshot()

    m.record(SleepStageType.DEEP_SLEEP, TICK)
    m.add_intervention(AudioNudge(kind=AudioKind.NATURE_SOUNDS, reason="restless"))

    assert snap.per_stage_duration[SleepStageType.DEEP_SLEEP] == 0.0
    assert len(snap.interventions) == 1
