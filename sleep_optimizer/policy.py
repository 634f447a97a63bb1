from collections.abc import Callable, Mapping
from typing import Any

from aws_lambda_powertools import Logger
from pydantic import BaseModel, ValidationError

from .errors import PolicyError
from .models import NUDGE_ACTION_ADAPTER, EnvironmentSnapshot, NudgeAction, SleepState

logger = Logger(service="sleep-optimizer")

DecideFunc = Callable[[SleepState, EnvironmentSnapshot], Any]


class DecisionPolicy:
    """Wraps an external intervention policy.

    The wrapped function may return None (no nudge, the usual case), a NudgeAction,
    or a plain mapping shaped like one. Mappings are validated into the action
    union; anything malformed, including an empty reason, raises PolicyError.
    """

    def __init__(self, decide_fn: DecideFunc) -> None:
        self._decide_fn = decide_fn

    def decide(self, state: SleepState, environment: EnvironmentSnapshot) -> NudgeAction | None:
        try:
            raw = self._decide_fn(state, environment)
        except Exception as exc:
            raise PolicyError(f"policy call failed: {exc}") from exc

        if raw is None:
            return None
        try:
            if isinstance(raw, BaseModel):
                # model_construct() skips validators
                action = NUDGE_ACTION_ADAPTER.validate_python(raw.model_dump())
            elif isinstance(raw, Mapping):
                action = NUDGE_ACTION_ADAPTER.validate_python(dict(raw))
            else:
                raise PolicyError(f"unsupported policy result type: {type(raw).__name__}")
        except ValidationError as exc:
            raise PolicyError(f"malformed policy action: {exc}") from exc

        logger.debug("policy_decided", action=action.describe(), reason=action.reason)
        return action


def null_policy(_state: SleepState, _environment: EnvironmentSnapshot) -> None:
    """Never nudges; used for monitoring-only sessions."""
    return None
