from typing import Any, cast

import requests  # type: ignore[import-untyped]
from aws_lambda_powertools import Logger

from .classifier import StageFeatures
from .models import AudioKind, EnvironmentSnapshot, SleepState, Vitals

logger = Logger(service="sleep-optimizer")


class SleepHubClient:
    """Encapsulates calls to the bedroom hub's local HTTP API.

    The hub fronts the wearable (vitals), room sensors (environment), the stage
    model and nudge policy, and the audio/haptic, smart-environment and bed-motor
    actuators. One instance satisfies all three actuator protocols and can be
    passed as the vitals/environment reader, inference and policy functions.
    Every call raises RuntimeError on a 4xx/5xx response.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        user_agent: str = "sleep-optimizer/1.0",
        timeout: float = 5.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._user_agent = user_agent
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/json",
            "User-Agent": self._user_agent,
        }

    def _get(self, path: str) -> dict[str, Any]:
        resp = requests.get(f"{self.base_url}{path}", headers=self._headers(), timeout=self._timeout)
        if resp.status_code >= 400:
            raise RuntimeError(f"Hub GET {path} failed: {resp.status_code}")
        return cast(dict[str, Any], resp.json())

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        resp = requests.post(
            f"{self.base_url}{path}",
            json=payload,
            headers={**self._headers(), "Content-Type": "application/json"},
            timeout=self._timeout,
        )
        if resp.status_code >= 400:
            raise RuntimeError(f"Hub POST {path} failed: {resp.status_code}")
        if resp.status_code == 204 or not resp.content:
            return {}
        return cast(dict[str, Any], resp.json())

    def get_vitals(self) -> Vitals:
        return Vitals.model_validate(self._get("/vitals"))

    def get_environment(self) -> EnvironmentSnapshot:
        return EnvironmentSnapshot.model_validate(self._get("/environment"))

    def environment_reading(self) -> dict[str, Any]:
        """Raw environment fields, for merging with local sensor readings."""
        return self._get("/environment")

    def classify(self, features: StageFeatures) -> str:
        payload = self._post("/classify", features.as_dict())
        return str(payload.get("stage", ""))

    def decide(self, state: SleepState, environment: EnvironmentSnapshot) -> dict[str, Any] | None:
        payload = self._post(
            "/decide",
            {"state": state.model_dump(mode="json"), "environment": environment.model_dump(mode="json")},
        )
        action = payload.get("action")
        return cast(dict[str, Any], action) if action else None

    def _command(self, domain: str, command: str, **params: Any) -> None:
        self._post(f"/actuators/{domain}/{command}", params)
        logger.debug("hub_command_accepted", domain=domain, command=command, params=params)

    # Audio / haptic engine
    def play_audio(self, kind: AudioKind) -> None:
        self._command("audio", "play", kind=kind.value)

    def stop_audio(self) -> None:
        self._command("audio", "stop")

    def apply_haptic(self, intensity: float) -> None:
        self._command("haptic", "pulse", intensity=intensity)

    # Smart environment
    def adjust_temperature(self, target: float) -> None:
        self._command("environment", "temperature", target=target)

    def adjust_humidity(self, target: float) -> None:
        self._command("environment", "humidity", target=target)

    def adjust_lighting(self, level: float) -> None:
        self._command("environment", "lighting", level=level)

    def adjust_blinds(self, position: float) -> None:
        self._command("environment", "blinds", position=position)

    def set_hepa_filter(self, on: bool, mode: str) -> None:
        self._command("environment", "hepa", on=on, mode=mode)

    def clear_overrides(self) -> None:
        self._command("environment", "clear_overrides")

    # Bed motor
    def adjust_head_elevation(self, value: float) -> None:
        self._command("bed", "head", value=value)

    def adjust_foot_elevation(self, value: float) -> None:
        self._command("bed", "foot", value=value)

    def start_massage(self, intensity: float) -> None:
        self._command("bed", "massage/start", intensity=intensity)

    def stop_massage(self) -> None:
        self._command("bed", "massage/stop")
