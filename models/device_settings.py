import enum

from . import db
from sqlalchemy import Integer, String, ForeignKey, Boolean, Float

from .sensor_reading import SensorType


class ActuatorCommand(enum.Enum):
    """Desired state of one actuator as sent to the device.

    ``UNSET`` means the actuator has never been commanded and is sent as
    ``null`` so the firmware leaves it alone.
    """
    UNSET = None
    ON = 'ON'
    OFF = 'OFF'

    @classmethod
    def from_state(cls, state):
        if state is None:
            return cls.UNSET
        return cls.ON if state else cls.OFF


# Dashboard actuator name -> desired state column
ACTUATOR_COLUMNS = {
    'light': 'desired_light_state',
    'fan': 'desired_fan_state',
    'irrigation': 'desired_irrigation_state',
    'uvLight': 'desired_uv_light_state',
}

# Order matters: manual read requests are reported in this order.
MANUAL_READ_FLAGS = (
    (SensorType.TEMPERATURE, 'request_manual_temperature_reading'),
    (SensorType.AIR_HUMIDITY, 'request_manual_air_humidity_reading'),
    (SensorType.SOIL_HUMIDITY, 'request_manual_soil_humidity_reading'),
    (SensorType.LIGHT, 'request_manual_light_level_reading'),
)


class TemperatureUnit(str, enum.Enum):
    CELSIUS = 'CELSIUS'
    FAHRENHEIT = 'FAHRENHEIT'


class DeviceSettings(db.Model):
    __tablename__ = 'device_settings'

    device_serial = db.Column(String(64), ForeignKey('devices.serial_number', ondelete='CASCADE'),
                              primary_key=True)

    # --- Continuous configuration ---
    measurement_interval = db.Column(Integer, nullable=False, default=5)
    auto_irrigation = db.Column(Boolean, nullable=False, default=True)
    irrigation_threshold = db.Column(Integer, nullable=False, default=30)
    auto_ventilation = db.Column(Boolean, nullable=False, default=True)
    temperature_threshold = db.Column(Float, nullable=False, default=30.0)
    temperature_fan_off_threshold = db.Column(Float, nullable=False, default=28.0)
    auto_roof_control = db.Column(Boolean, nullable=False, default=False)
    roof_open_time = db.Column(String(5), nullable=True)
    roof_close_time = db.Column(String(5), nullable=True)
    photo_capture_interval = db.Column(Integer, nullable=False, default=6)
    temperature_unit = db.Column(String(10), nullable=False, default=TemperatureUnit.CELSIUS.value)

    # --- Desired actuator state (None = never commanded) ---
    desired_light_state = db.Column(Boolean, nullable=True)
    desired_fan_state = db.Column(Boolean, nullable=True)
    desired_irrigation_state = db.Column(Boolean, nullable=True)
    desired_uv_light_state = db.Column(Boolean, nullable=True)

    # --- One-shot manual read requests ---
    request_manual_temperature_reading = db.Column(Boolean, nullable=False, default=False)
    request_manual_air_humidity_reading = db.Column(Boolean, nullable=False, default=False)
    request_manual_soil_humidity_reading = db.Column(Boolean, nullable=False, default=False)
    request_manual_light_level_reading = db.Column(Boolean, nullable=False, default=False)

    def command_for(self, actuator):
        return ActuatorCommand.from_state(getattr(self, ACTUATOR_COLUMNS[actuator]))

    def to_dict(self):
        return {
            'deviceId': self.device_serial,
            'measurementInterval': self.measurement_interval,
            'autoIrrigation': self.auto_irrigation,
            'irrigationThreshold': self.irrigation_threshold,
            'autoVentilation': self.auto_ventilation,
            'temperatureThreshold': self.temperature_threshold,
            'temperatureFanOffThreshold': self.temperature_fan_off_threshold,
            'autoRoofControl': self.auto_roof_control,
            'roofOpenTime': self.roof_open_time,
            'roofCloseTime': self.roof_close_time,
            'photoCaptureInterval': self.photo_capture_interval,
            'temperatureUnit': self.temperature_unit,
            'desiredLightState': self.desired_light_state,
            'desiredFanState': self.desired_fan_state,
            'desiredIrrigationState': self.desired_irrigation_state,
            'desiredUvLightState': self.desired_uv_light_state,
        }

    def __repr__(self):
        return f'<DeviceSettings for {self.device_serial}>'
