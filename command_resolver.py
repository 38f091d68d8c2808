"""Device-facing command polling.

A device calls ``resolve_commands`` with its hardware identifier and gets back
its configuration, the desired state of every actuator and the list of
manual readings an operator asked for since the last poll.

Manual read requests are one-shot. Each flag is cleared with a conditional
``UPDATE ... WHERE flag = true`` and only reported when that statement
actually changed the row, so a request is delivered at most once and a
request raised after the clear survives to the next poll.
"""
from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from models import db, Device, DeviceSettings, MANUAL_READ_FLAGS
from errors import NotFoundError, ValidationError, IntegrityError, StorageError


# Wire name -> settings column, copied through unchanged
CONFIGURATION_FIELDS = (
    ('measurementIntervalMinutes', 'measurement_interval'),
    ('autoIrrigationEnabled', 'auto_irrigation'),
    ('irrigationThresholdPercent', 'irrigation_threshold'),
    ('autoVentilationEnabled', 'auto_ventilation'),
    ('temperatureOnThresholdCelsius', 'temperature_threshold'),
    ('temperatureOffThresholdCelsius', 'temperature_fan_off_threshold'),
    ('autoRoofEnabled', 'auto_roof_control'),
    ('roofOpenTime', 'roof_open_time'),
    ('roofCloseTime', 'roof_close_time'),
    ('photoCaptureIntervalHours', 'photo_capture_interval'),
    ('temperatureUnit', 'temperature_unit'),
)

COMMAND_FIELDS = (
    ('lightCommand', 'light'),
    ('fanCommand', 'fan'),
    ('irrigationCommand', 'irrigation'),
    ('uvLightCommand', 'uvLight'),
)


def consume_manual_read_requests(device_serial):
    """Clear every pending manual read flag for the device and return the sensor types cleared.

    Must run inside the caller's transaction; nothing is committed here.
    """
    consumed = []
    for sensor_type, column_name in MANUAL_READ_FLAGS:
        column = getattr(DeviceSettings, column_name)
        result = db.session.execute(
            update(DeviceSettings)
            .where(DeviceSettings.device_serial == device_serial, column.is_(True))
            .values({column_name: False})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            consumed.append(sensor_type)
    return consumed


def build_command_payload(settings, manual_read_requests):
    payload = {}
    for wire_name, column_name in CONFIGURATION_FIELDS:
        payload[wire_name] = getattr(settings, column_name)
    for wire_name, actuator in COMMAND_FIELDS:
        payload[wire_name] = settings.command_for(actuator).value

    # Minimal firmware expects the key to be absent rather than an empty list
    if manual_read_requests:
        payload['manualReadRequests'] = [sensor_type.value for sensor_type in manual_read_requests]
    return payload


def resolve_commands(hardware_identifier):
    """Return the command payload for a device, consuming its pending manual read requests."""
    if not hardware_identifier or not hardware_identifier.strip():
        raise ValidationError('Hardware identifier is required')

    try:
        device = Device.by_hardware_identifier(hardware_identifier)
        if device is None:
            raise NotFoundError('Device not found with this hardware identifier')

        device_serial = device.serial_number
        settings = DeviceSettings.query.filter_by(device_serial=device_serial).first()
        if settings is None:
            current_app.logger.error(f"Device {device_serial} has no settings row.")
            raise IntegrityError('Device settings not found')

        consumed = consume_manual_read_requests(device_serial)
        payload = build_command_payload(settings, consumed)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error resolving commands for hardwareId {hardware_identifier}: {e}", exc_info=True)
        raise StorageError('An internal server error occurred') from e
    except (NotFoundError, IntegrityError):
        db.session.rollback()
        raise

    if consumed:
        current_app.logger.info(
            f"Delivered manual read requests {[t.value for t in consumed]} to device {device_serial}."
        )
    return payload
