import contextlib
import os
from enum import StrEnum
from typing import Final

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError


class LogLevel(StrEnum):
    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    DEBUG = "DEBUG"


class EnvironmentSource(StrEnum):
    HUB = "hub"
    SENSORS = "sensors"


class Settings(BaseModel):
    hub_url: str = Field(validation_alias="HUB_URL")
    hub_token: str = Field(validation_alias="HUB_TOKEN")
    user_agent: str = Field(default="sleep-optimizer/1.0", validation_alias="USER_AGENT")
    http_timeout_secs: float = Field(default=5.0, gt=0, validation_alias="HTTP_TIMEOUT_SECS")

    tick_interval_secs: float = Field(default=30.0, gt=0, validation_alias="TICK_INTERVAL_SECS")
    history_db_path: str = Field(default="./history.db", validation_alias="HISTORY_DB_PATH")
    log_level: LogLevel = Field(default=LogLevel.INFO, validation_alias="LOG_LEVEL")

    environment_source: EnvironmentSource = Field(default=EnvironmentSource.HUB, validation_alias="ENVIRONMENT_SOURCE")
    i2c_bus: int = Field(default=1, validation_alias="I2C_BUS")
    bme680_i2c_address: int = Field(default=0x76, validation_alias="BME680_I2C_ADDRESS")
    veml6030_i2c_address: int = Field(default=0x48, validation_alias="VEML6030_I2C_ADDRESS")
    # Ambient lux that maps to light level 1.0
    light_full_scale_lux: float = Field(default=400.0, gt=0, validation_alias="LIGHT_FULL_SCALE_LUX")


ENV_KEYS: Final[tuple[str, ...]] = (
    "HUB_URL",
    "HUB_TOKEN",
    "USER_AGENT",
    "HTTP_TIMEOUT_SECS",
    "TICK_INTERVAL_SECS",
    "HISTORY_DB_PATH",
    "LOG_LEVEL",
    "ENVIRONMENT_SOURCE",
    "I2C_BUS",
    "BME680_I2C_ADDRESS",
    "VEML6030_I2C_ADDRESS",
    "LIGHT_FULL_SCALE_LUX",
)
REQUIRED_KEYS: Final[tuple[str, ...]] = ("HUB_URL", "HUB_TOKEN")
_I2C_ADDRESS_KEYS: Final[tuple[str, ...]] = ("BME680_I2C_ADDRESS", "VEML6030_I2C_ADDRESS")


def _parse_i2c_address(raw: str) -> str:
    # "0x76" and "118" both accepted; anything else is left for pydantic to reject
    with contextlib.suppress(ValueError):
        return str(int(raw, 0))
    return raw


def load_settings() -> Settings:
    """Build Settings from the process environment, after merging an optional .env."""
    load_dotenv()
    data = {key: os.environ[key] for key in ENV_KEYS if key in os.environ}
    for key in _I2C_ADDRESS_KEYS:
        if key in data:
            data[key] = _parse_i2c_address(data[key])

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        absent = [key for key in REQUIRED_KEYS if key not in data]
        if absent:
            raise RuntimeError(f"Missing required configuration: {', '.join(absent)}") from e
        raise
