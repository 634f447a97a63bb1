from typing import Any

import bme680
import qwiic_veml6030
import smbus2
from bme680 import constants

from .helpers import normalize_lux


class RoomSensors:
    """Bedside BME680 (temperature, humidity) and VEML6030 (ambient light) over I2C.

    ``read()`` returns only the fields that were ready, keyed like
    EnvironmentSnapshot, so it can be merged with other sources.
    """

    def __init__(
        self,
        i2c_bus: int,
        bme680_address: int,
        veml6030_address: int,
        light_full_scale_lux: float = 400.0,
    ) -> None:
        self._bme = bme680.BME680(i2c_addr=bme680_address, i2c_device=smbus2.SMBus(i2c_bus))
        self._bme.set_humidity_oversample(constants.OS_2X)
        self._bme.set_temperature_oversample(constants.OS_8X)
        self._bme.set_filter(constants.FILTER_SIZE_3)
        # No IAQ here; the gas heater would also bias the temperature reading
        self._bme.set_gas_status(constants.DISABLE_GAS_MEAS)

        self._light = qwiic_veml6030.QwiicVEML6030(address=veml6030_address)  # type: ignore[attr-defined]
        if not bool(self._light.is_connected()):
            raise RuntimeError("VEML6030 not detected at the specified address")
        if not self._light.begin():
            raise RuntimeError("Failed to initialize VEML6030")
        self._light_full_scale_lux = light_full_scale_lux

    def _read_lux(self) -> float | None:
        try:
            val: Any = self._light.read_light()
            return float(val) if val is not None else None
        except Exception:
            return None

    def read(self) -> dict[str, Any]:
        reading: dict[str, Any] = {}
        if self._bme.get_sensor_data():
            data = self._bme.data
            if data.temperature is not None:
                reading["temperature"] = float(data.temperature)
            if data.humidity is not None:
                reading["humidity"] = float(data.humidity)
        lux = self._read_lux()
        if lux is not None:
            reading["light_level"] = normalize_lux(lux, self._light_full_scale_lux)
        return reading
