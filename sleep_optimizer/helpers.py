from collections.abc import Callable
from typing import Any

from aws_lambda_powertools import Logger
from pydantic import ValidationError

from .errors import SignalUnavailableError
from .models import EnvironmentSnapshot

logger = Logger(service="sleep-optimizer")


def normalize_lux(lux: float, full_scale_lux: float) -> float:
    """Map ambient lux onto the 0..1 light level; ``full_scale_lux`` and above is 1.0."""
    if full_scale_lux <= 0:
        raise ValueError("full_scale_lux must be positive")
    return min(1.0, max(0.0, lux / full_scale_lux))


def make_environment_reader(
    *read_funcs: Callable[[], dict[str, Any]],
) -> Callable[[], EnvironmentSnapshot]:
    """Merge partial environment readings from several sources into one snapshot.

    Later sources override earlier ones field by field; None values never override.
    A source that raises is skipped for this read. If the merged fields do not make
    a valid snapshot, SignalUnavailableError is raised.
    """

    def read_environment() -> EnvironmentSnapshot:
        merged: dict[str, Any] = {}
        for fn in read_funcs:
            try:
                data = fn()
            except Exception as exc:
                logger.debug("environment_source_failed", source=getattr(fn, "__name__", repr(fn)), error=str(exc))
                data = {}
            if isinstance(data, dict):
                merged.update({k: v for k, v in data.items() if v is not None})
        try:
            return EnvironmentSnapshot.model_validate(merged)
        except ValidationError as exc:
            raise SignalUnavailableError(f"incomplete environment reading: {exc}") from exc

    return read_environment
