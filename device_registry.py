"""Operator-side operations on devices and their settings.

These are the writers the device protocol reads from: registration creates a
device together with its settings row, the dashboard edits configuration,
toggles actuators and raises manual read requests.
"""
import datetime
from typing import Literal, Optional

import pydantic
from flask import current_app
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import update
from sqlalchemy import exc as sa_exc
from sqlalchemy.exc import SQLAlchemyError

from models import (db, Device, DeviceSettings, SensorType, TemperatureUnit,
                    ACTUATOR_COLUMNS, MANUAL_READ_FLAGS)
from errors import ConflictError, IntegrityError, NotFoundError, StorageError, ValidationError
from utils import check_roof_time, generate_hardware_identifier, utcnow


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')


class DeviceRegistration(_CamelModel):
    serial_number: str = Field(min_length=1, max_length=64)
    hardware_identifier: Optional[str] = Field(None, min_length=1, max_length=128)
    name: str = Field(min_length=1, max_length=100)
    plant_type: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=100)
    is_powered_by_battery: bool = False


class SettingsUpdate(_CamelModel):
    measurement_interval: int = Field(ge=1, le=60)
    auto_irrigation: bool
    irrigation_threshold: int = Field(ge=10, le=90)
    auto_ventilation: bool
    temperature_threshold: float = Field(ge=0, le=50)
    temperature_fan_off_threshold: float = Field(ge=0, le=49)
    auto_roof_control: bool = False
    roof_open_time: Optional[str] = None
    roof_close_time: Optional[str] = None
    photo_capture_interval: int = Field(ge=1, le=24)
    temperature_unit: TemperatureUnit

    @field_validator('roof_open_time', 'roof_close_time')
    @classmethod
    def _roof_time(cls, value):
        if value is not None and not check_roof_time(value):
            raise ValueError('must be a time in HH:MM format')
        return value

    @model_validator(mode='after')
    def _fan_off_below_fan_on(self):
        if self.temperature_fan_off_threshold >= self.temperature_threshold:
            raise ValueError('Ventilation Temp Off threshold must be less than Ventilation Temp On threshold.')
        return self


class ActuatorControl(_CamelModel):
    device_id: str = Field(min_length=1)
    actuator: Literal['light', 'fan', 'irrigation', 'uvLight']
    state: Literal['on', 'off']


class ManualReadingRequest(_CamelModel):
    device_id: str = Field(min_length=1)
    sensor_type: SensorType


def parse(model, data):
    """Validate a request body against ``model``, raising our ValidationError."""
    if not isinstance(data, dict):
        raise ValidationError('Invalid input')
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        errors = [{'field': '.'.join(str(part) for part in err['loc']), 'message': err['msg']}
                  for err in e.errors()]
        raise ValidationError('Invalid input', errors=errors) from e


def get_device(serial_number):
    device = db.session.get(Device, serial_number)
    if device is None:
        raise NotFoundError('Device not found')
    return device


def get_settings(serial_number):
    get_device(serial_number)
    settings = db.session.get(DeviceSettings, serial_number)
    if settings is None:
        raise IntegrityError('Device settings not found')
    return settings


def default_settings(serial_number):
    config = current_app.config
    return DeviceSettings(
        device_serial=serial_number,
        measurement_interval=config['DEFAULT_MEASUREMENT_INTERVAL'],
        auto_irrigation=config['DEFAULT_AUTO_IRRIGATION'],
        irrigation_threshold=config['DEFAULT_IRRIGATION_THRESHOLD'],
        auto_ventilation=config['DEFAULT_AUTO_VENTILATION'],
        temperature_threshold=config['DEFAULT_TEMPERATURE_ON_THRESHOLD'],
        temperature_fan_off_threshold=config['DEFAULT_TEMPERATURE_OFF_THRESHOLD'],
        auto_roof_control=config['DEFAULT_AUTO_ROOF_CONTROL'],
        roof_open_time=config['DEFAULT_ROOF_OPEN_TIME'],
        roof_close_time=config['DEFAULT_ROOF_CLOSE_TIME'],
        photo_capture_interval=config['DEFAULT_PHOTO_CAPTURE_INTERVAL'],
        temperature_unit=config['DEFAULT_TEMPERATURE_UNIT'],
    )


def register_device(serial_number, name, hardware_identifier=None, plant_type=None,
                    location=None, is_powered_by_battery=False):
    """Create a device and its settings row in one transaction."""
    now = utcnow()
    hardware_identifier = hardware_identifier or generate_hardware_identifier(serial_number, now)

    if db.session.get(Device, serial_number) is not None:
        raise ConflictError('Device with this serial number already exists')
    if Device.by_hardware_identifier(hardware_identifier) is not None:
        raise ConflictError('Device with this hardware identifier already exists')

    device = Device(
        serial_number=serial_number,
        hardware_identifier=hardware_identifier,
        name=name,
        plant_type=plant_type,
        location=location,
        activation_date=now,
        warranty_end_date=now + datetime.timedelta(days=current_app.config['WARRANTY_DAYS']),
        is_active=True,
        is_powered_by_battery=is_powered_by_battery,
        last_update_timestamp=None,
    )
    device.settings = default_settings(serial_number)

    try:
        db.session.add(device)
        db.session.commit()
    except sa_exc.IntegrityError as e:
        # Lost a race with a concurrent registration of the same serial or hardware id
        db.session.rollback()
        current_app.logger.warning(f"Duplicate registration for device {serial_number}: {e}")
        raise ConflictError('Device with this serial number or hardware identifier already exists') from e
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error registering device {serial_number}: {e}", exc_info=True)
        raise StorageError('An internal server error occurred during device registration.') from e

    current_app.logger.info(f"Registered device {serial_number} with hardwareId {hardware_identifier}.")
    return device


def delete_device(serial_number):
    device = get_device(serial_number)
    try:
        db.session.delete(device)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error deleting device {serial_number}: {e}", exc_info=True)
        raise StorageError('An internal server error occurred') from e
    current_app.logger.info(f"Deleted device {serial_number}.")


def update_settings(serial_number, changes):
    """Overwrite the continuous configuration (last write wins)."""
    settings = get_settings(serial_number)
    for field_name, value in changes.model_dump().items():
        if isinstance(value, TemperatureUnit):
            value = value.value
        setattr(settings, field_name, value)
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error saving settings for device {serial_number}: {e}", exc_info=True)
        raise StorageError('An internal server error occurred') from e
    return settings


def _set_flag(serial_number, column_name, value):
    get_device(serial_number)
    try:
        result = db.session.execute(
            update(DeviceSettings)
            .where(DeviceSettings.device_serial == serial_number)
            .values({column_name: value})
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            db.session.rollback()
            raise IntegrityError('Device settings not found')
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error updating {column_name} for device {serial_number}: {e}", exc_info=True)
        raise StorageError('An internal server error occurred') from e


def set_actuator_state(serial_number, actuator, state):
    """Record the desired state of an actuator; the device picks it up on its next poll."""
    if actuator not in ACTUATOR_COLUMNS:
        raise ValidationError('Invalid actuator type')
    if state not in ('on', 'off'):
        raise ValidationError('Invalid actuator state')
    _set_flag(serial_number, ACTUATOR_COLUMNS[actuator], state == 'on')
    current_app.logger.info(f"Set {actuator} to {state} for device {serial_number}.")


def request_manual_reading(serial_number, sensor_type):
    """Raise the one-shot manual read flag for a sensor type."""
    try:
        sensor_type = SensorType(sensor_type)
    except ValueError as e:
        raise ValidationError('Invalid sensor type specified.') from e
    flags = dict(MANUAL_READ_FLAGS)
    if sensor_type not in flags:
        raise ValidationError(f"Manual reading for sensor type '{sensor_type.value}' is not supported.")
    _set_flag(serial_number, flags[sensor_type], True)
    current_app.logger.info(f"Manual {sensor_type.value} reading requested for device {serial_number}.")
