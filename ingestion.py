"""Sensor data ingestion.

Devices push either one snapshot or a list of snapshots. Every snapshot is
validated on its own; a bad item or an unknown hardware id is reported back
but does not stop the rest of the batch. All readings that survive are
written, together with the liveness update of their devices, in a single
transaction.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Union

import pydantic
from flask import current_app
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError

from models import db, Device, SensorReading, SensorType
from errors import MalformedPayloadError, ValidationError, StorageError
from utils import check_percentage, check_ph, is_water_state, utcnow


# Snapshot field -> (sensor type, unit). Water level unit depends on the value.
READING_FIELDS = (
    ('temperature', SensorType.TEMPERATURE, '°C'),
    ('air_humidity', SensorType.AIR_HUMIDITY, '%'),
    ('soil_humidity', SensorType.SOIL_HUMIDITY, '%'),
    ('light_level', SensorType.LIGHT, 'lux'),
    ('water_level', SensorType.WATER_LEVEL, None),
    ('ph', SensorType.PH, 'pH'),
)

WATER_STATE_UNIT = 'state'
WATER_PERCENT_UNIT = '%'


class SensorSnapshot(BaseModel):
    """One device's readings for a single ingestion call."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')

    hardware_id: str = Field(min_length=1)
    temperature: Optional[float] = Field(None, allow_inf_nan=False)
    air_humidity: Optional[float] = Field(None, allow_inf_nan=False)
    soil_humidity: Optional[float] = Field(None, allow_inf_nan=False)
    light_level: Optional[float] = Field(None, allow_inf_nan=False)
    water_level: Optional[float] = Field(None, allow_inf_nan=False)
    ph: Optional[float] = Field(None, allow_inf_nan=False)

    @field_validator('hardware_id')
    @classmethod
    def _not_blank(cls, value):
        if not value.strip():
            raise ValueError('Hardware ID is required')
        return value

    @field_validator('temperature', 'air_humidity', 'soil_humidity', 'light_level',
                     'water_level', 'ph', mode='before')
    @classmethod
    def _require_number(cls, value):
        # Firmware sends JSON numbers; "12" or true means a broken payload
        if value is None:
            return value
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError('must be a number')
        return value

    @field_validator('soil_humidity', 'water_level')
    @classmethod
    def _percentage(cls, value):
        if value is not None and not check_percentage(value):
            raise ValueError('must be between 0 and 100')
        return value

    @field_validator('ph')
    @classmethod
    def _ph_range(cls, value):
        if value is not None and not check_ph(value):
            raise ValueError('must be between 0 and 14')
        return value

    def expand(self):
        """One (sensor type, value, unit) tuple per reported field."""
        readings = []
        for field_name, sensor_type, unit in READING_FIELDS:
            value = getattr(self, field_name)
            if value is None:
                continue
            if sensor_type is SensorType.WATER_LEVEL:
                unit = WATER_STATE_UNIT if is_water_state(value) else WATER_PERCENT_UNIT
            readings.append((sensor_type, float(value), unit))
        return readings


@dataclass
class AcceptedItem:
    index: int
    hardware_id: str
    device_serial: str
    readings: list


@dataclass
class RejectedItem:
    index: int
    hardware_id: Optional[str]
    kind: str  # 'validation' or 'not_found'
    reason: str

    def to_dict(self):
        return {
            'index': self.index,
            'hardwareId': self.hardware_id,
            'error': self.kind,
            'message': self.reason,
        }


ItemResult = Union[AcceptedItem, RejectedItem]


@dataclass
class IngestionReport:
    stored_count: int
    device_serials: List[str] = field(default_factory=list)
    rejected: List[RejectedItem] = field(default_factory=list)

    def to_dict(self):
        body = {
            'message': f"{self.stored_count} sensor reading(s) processed successfully.",
            'storedCount': self.stored_count,
        }
        if self.rejected:
            body['errors'] = [item.to_dict() for item in self.rejected]
        return body


def _format_validation_error(error):
    parts = []
    for detail in error.errors():
        location = '.'.join(str(part) for part in detail['loc']) or 'snapshot'
        parts.append(f"{location}: {detail['msg']}")
    return '; '.join(parts)


def evaluate_item(index, raw, device_cache):
    """Validate one snapshot and resolve its device. Never raises for bad input."""
    raw_hardware_id = raw.get('hardwareId') if isinstance(raw, dict) else None
    try:
        snapshot = SensorSnapshot.model_validate(raw)
    except pydantic.ValidationError as e:
        return RejectedItem(index, raw_hardware_id, 'validation', _format_validation_error(e))

    hardware_id = snapshot.hardware_id
    if hardware_id not in device_cache:
        device_cache[hardware_id] = Device.by_hardware_identifier(hardware_id)
    device = device_cache[hardware_id]
    if device is None:
        return RejectedItem(index, hardware_id, 'not_found',
                            f"Device with hardwareId {hardware_id} not found")

    return AcceptedItem(index, hardware_id, device.serial_number, snapshot.expand())


def ingest_readings(payload):
    """Validate, expand and store a snapshot or list of snapshots.

    Returns an :class:`IngestionReport` when at least one reading was stored.
    Raises :class:`MalformedPayloadError` for a payload of the wrong shape,
    :class:`ValidationError` (with per-item errors) when nothing survived and
    :class:`StorageError` when the transaction failed.
    """
    if isinstance(payload, dict):
        items = [payload]
    elif isinstance(payload, list):
        items = payload
    else:
        raise MalformedPayloadError('Expected a sensor snapshot object or an array of snapshots')

    now = utcnow()
    device_cache = {}

    try:
        results = [evaluate_item(index, raw, device_cache) for index, raw in enumerate(items)]
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error resolving devices for ingestion: {e}", exc_info=True)
        raise StorageError('An internal server error occurred') from e

    rejected = [result for result in results if isinstance(result, RejectedItem)]
    for item in rejected:
        current_app.logger.warning(
            f"Rejected sensor snapshot #{item.index} (hardwareId={item.hardware_id}): {item.reason}"
        )

    rows = []
    device_serials = []
    for result in results:
        if not isinstance(result, AcceptedItem) or not result.readings:
            continue
        for sensor_type, value, unit in result.readings:
            rows.append(SensorReading(device_serial=result.device_serial, type=sensor_type,
                                      value=value, unit=unit, timestamp=now))
        if result.device_serial not in device_serials:
            device_serials.append(result.device_serial)

    if not rows:
        raise ValidationError('No valid sensor data to process or device not found.',
                              errors=[item.to_dict() for item in rejected])

    devices = {device.serial_number: device for device in device_cache.values() if device is not None}
    try:
        db.session.add_all(rows)
        for serial in device_serials:
            devices[serial].last_update_timestamp = now
            devices[serial].is_active = True
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error storing sensor readings, batch rolled back: {e}", exc_info=True)
        raise StorageError('An internal server error occurred') from e

    current_app.logger.info(f"Stored {len(rows)} sensor reading(s) for device(s) {', '.join(device_serials)}.")
    return IngestionReport(stored_count=len(rows), device_serials=device_serials, rejected=rejected)
