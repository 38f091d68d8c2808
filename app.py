import logging

import click
from flask import Flask, request, jsonify

# --- Import db and Models ---
from models import db, Device, SensorReading, SensorType

# --- Import Config ---
from config import get_config

# --- Import protocol and registry operations ---
from command_resolver import resolve_commands
from ingestion import ingest_readings
from errors import DeviceSyncError, MalformedPayloadError, ValidationError
import device_registry
from device_registry import (DeviceRegistration, SettingsUpdate, ActuatorControl,
                             ManualReadingRequest, parse)
from utils import format_timestamp


# --- Create and Configure App ---
app = Flask(__name__)

# --- Load Configuration based on FLASK_ENV ---
app_config = get_config()
app.config.from_object(app_config)

# --- Initialize Extensions ---
db.init_app(app)


# --- Logging Setup (using config value) ---
log_level_name = app.config.get('LOGGING_LEVEL', 'INFO')
log_level = getattr(logging, log_level_name, logging.INFO)
logging.basicConfig(level=log_level,
                    format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]')


def error_response(error):
    return jsonify(error.to_dict()), error.status_code


def internal_error():
    return jsonify({'message': 'An internal server error occurred'}), 500


def device_to_dict(device):
    return {
        'serialNumber': device.serial_number,
        'hardwareIdentifier': device.hardware_identifier,
        'name': device.name,
        'plantType': device.plant_type,
        'location': device.location,
        'activationDate': format_timestamp(device.activation_date),
        'warrantyEndDate': format_timestamp(device.warranty_end_date),
        'isActive': device.is_active,
        'isPoweredByBattery': device.is_powered_by_battery,
        'lastUpdateTimestamp': format_timestamp(device.last_update_timestamp),
    }


@app.route('/')
def index():
    return "GreenView device sync service is running."


# --- Device protocol ---

@app.route('/api/device-commands/<hardware_identifier>')
def get_device_commands(hardware_identifier):
    try:
        payload = resolve_commands(hardware_identifier)
    except DeviceSyncError as e:
        if e.status_code < 500:
            app.logger.warning(f"Command poll for hardwareId {hardware_identifier} failed: {e.message}")
        return error_response(e)
    except Exception as e:
        app.logger.error(f"Error fetching commands for hardwareId {hardware_identifier}: {e}", exc_info=True)
        return internal_error()
    return jsonify(payload), 200


@app.route('/api/ingest-sensor-data', methods=['POST'])
def ingest_sensor_data():
    payload = request.get_json(silent=True)
    if payload is None:
        return error_response(MalformedPayloadError('Invalid JSON payload'))

    try:
        report = ingest_readings(payload)
    except DeviceSyncError as e:
        return error_response(e)
    except Exception as e:
        app.logger.error(f"Error ingesting sensor data: {e}", exc_info=True)
        return internal_error()
    return jsonify(report.to_dict()), 201


# --- Device registry and dashboard ---

@app.route('/api/devices', methods=['POST'])
def register_device():
    try:
        registration = parse(DeviceRegistration, request.get_json(silent=True))
        device = device_registry.register_device(**registration.model_dump())
    except DeviceSyncError as e:
        return error_response(e)
    except Exception as e:
        app.logger.error(f"Device registration error: {e}", exc_info=True)
        return internal_error()
    return jsonify({'message': 'Device registered successfully', 'device': device_to_dict(device)}), 201


@app.route('/api/devices/<serial_number>', methods=['DELETE'])
def delete_device(serial_number):
    try:
        device_registry.delete_device(serial_number)
    except DeviceSyncError as e:
        return error_response(e)
    except Exception as e:
        app.logger.error(f"Error deleting device {serial_number}: {e}", exc_info=True)
        return internal_error()
    return jsonify({'message': 'Device deleted successfully'}), 200


@app.route('/api/device-settings/<serial_number>', methods=['GET', 'POST'])
def device_settings(serial_number):
    try:
        if request.method == 'POST':
            changes = parse(SettingsUpdate, request.get_json(silent=True))
            settings = device_registry.update_settings(serial_number, changes)
        else:
            settings = device_registry.get_settings(serial_number)
        return jsonify(settings.to_dict()), 200
    except DeviceSyncError as e:
        return error_response(e)
    except Exception as e:
        app.logger.error(f"Error handling settings for device {serial_number}: {e}", exc_info=True)
        return internal_error()


@app.route('/api/device-control', methods=['POST'])
def device_control():
    try:
        control = parse(ActuatorControl, request.get_json(silent=True))
        device_registry.set_actuator_state(control.device_id, control.actuator, control.state)
    except DeviceSyncError as e:
        return error_response(e)
    except Exception as e:
        app.logger.error(f"Error setting device control state: {e}", exc_info=True)
        return internal_error()
    return jsonify({'message': f"{control.actuator} state set to {control.state} successfully"}), 200


@app.route('/api/request-manual-reading', methods=['POST'])
def request_manual_reading():
    try:
        reading_request = parse(ManualReadingRequest, request.get_json(silent=True))
        device_registry.request_manual_reading(reading_request.device_id, reading_request.sensor_type)
    except DeviceSyncError as e:
        return error_response(e)
    except Exception as e:
        app.logger.error(f"Error requesting manual sensor reading: {e}", exc_info=True)
        return internal_error()
    sensor_name = reading_request.sensor_type.value.lower()
    return jsonify({
        'message': f"Manual reading request for {sensor_name} sent successfully. "
                   f"The device will perform the reading on its next command poll."
    }), 200


# --- Telemetry ---

@app.route('/api/sensor-data/<serial_number>')
def get_latest_sensor_data(serial_number):
    try:
        device_registry.get_device(serial_number)
        readings = SensorReading.latest_for_device(serial_number)
    except DeviceSyncError as e:
        return error_response(e)
    except Exception as e:
        app.logger.error(f"Error fetching sensor data for device {serial_number}: {e}", exc_info=True)
        return internal_error()
    return jsonify([reading.to_dict() for reading in readings]), 200


@app.route('/api/sensor-data/historical/<serial_number>')
def get_historical_sensor_data(serial_number):
    sensor_type_param = request.args.get('sensorType')
    limit_param = request.args.get('limit')

    try:
        try:
            sensor_type = SensorType(sensor_type_param)
        except ValueError:
            raise ValidationError('Valid sensorType query parameter is required')

        limit = app.config['HISTORY_DEFAULT_LIMIT']
        if limit_param is not None:
            try:
                limit = int(limit_param)
            except ValueError:
                raise ValidationError('Invalid limit parameter')
            if limit <= 0:
                raise ValidationError('Invalid limit parameter')
        limit = min(limit, app.config['HISTORY_MAX_LIMIT'])

        device_registry.get_device(serial_number)
        readings = SensorReading.history(serial_number, sensor_type, limit)
    except DeviceSyncError as e:
        return error_response(e)
    except Exception as e:
        app.logger.error(f"Error fetching historical sensor data for device {serial_number}: {e}", exc_info=True)
        return internal_error()
    return jsonify([reading.to_dict() for reading in readings]), 200


# --- CLI ---

@app.cli.command('init-db')
def init_db_command():
    db.drop_all()
    db.create_all()
    click.echo('Initialized the database.')


@app.cli.command('register-device')
@click.argument('serial_number')
@click.argument('name')
@click.option('--hardware-id', default=None, help='Identifier reported by the physical unit.')
@click.option('--plant-type', default=None)
@click.option('--location', default=None)
@click.option('--battery/--mains', default=False, help='Whether the unit runs on battery.')
def register_device_command(serial_number, name, hardware_id, plant_type, location, battery):
    """Registers a device together with its default settings."""
    try:
        device = device_registry.register_device(serial_number, name, hardware_identifier=hardware_id,
                                                 plant_type=plant_type, location=location,
                                                 is_powered_by_battery=battery)
    except DeviceSyncError as e:
        click.echo(f"Error registering device: {e.message}")
        return
    click.echo(f"Device '{device.serial_number}' registered with hardware identifier '{device.hardware_identifier}'.")


@app.cli.command('request-reading')
@click.argument('serial_number')
@click.argument('sensor_type', type=click.Choice([flag[0].value for flag in device_registry.MANUAL_READ_FLAGS]))
def request_reading_command(serial_number, sensor_type):
    """Asks a device for a one-off reading on its next poll."""
    try:
        device_registry.request_manual_reading(serial_number, sensor_type)
    except DeviceSyncError as e:
        click.echo(f"Error requesting reading: {e.message}")
        return
    click.echo(f"Manual {sensor_type} reading requested for '{serial_number}'.")


@app.cli.command('set-actuator')
@click.argument('serial_number')
@click.argument('actuator', type=click.Choice(list(device_registry.ACTUATOR_COLUMNS)))
@click.argument('state', type=click.Choice(['on', 'off']))
def set_actuator_command(serial_number, actuator, state):
    """Sets the desired state of one actuator."""
    try:
        device_registry.set_actuator_state(serial_number, actuator, state)
    except DeviceSyncError as e:
        click.echo(f"Error setting actuator: {e.message}")
        return
    click.echo(f"{actuator} set to {state} for '{serial_number}'.")


@app.cli.command('list-devices')
def list_devices_command():
    """Lists registered devices and when they last reported."""
    devices = Device.query.order_by(Device.serial_number).all()
    if not devices:
        click.echo('No devices registered.')
        return
    for device in devices:
        last_seen = format_timestamp(device.last_update_timestamp) or 'never'
        status = 'active' if device.is_active else 'inactive'
        click.echo(f"{device.serial_number}\t{device.hardware_identifier}\t{status}\tlast update: {last_seen}")
