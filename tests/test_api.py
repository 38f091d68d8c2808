from __future__ import annotations

from sqlalchemy import delete

from models import DeviceSettings, SensorReading, db


def test_device_commands_round_trip(client, make_device) -> None:
    make_device('GV-1')
    client.post('/api/device-control', json={'deviceId': 'GV-1', 'actuator': 'light', 'state': 'on'})
    client.post('/api/request-manual-reading', json={'deviceId': 'GV-1', 'sensorType': 'TEMPERATURE'})

    first = client.get('/api/device-commands/HW-GV-1')
    second = client.get('/api/device-commands/HW-GV-1')

    assert first.status_code == 200
    assert first.get_json()['lightCommand'] == 'ON'
    assert first.get_json()['fanCommand'] is None
    assert first.get_json()['manualReadRequests'] == ['TEMPERATURE']
    assert 'manualReadRequests' not in second.get_json()


def test_device_commands_unknown_device(client) -> None:
    response = client.get('/api/device-commands/HW-NOPE')

    assert response.status_code == 404
    assert response.get_json()['message'] == 'Device not found with this hardware identifier'


def test_ingest_partial_batch_returns_201(client, make_device) -> None:
    make_device('GV-1')

    response = client.post('/api/ingest-sensor-data', json=[
        {'hardwareId': 'HW-GV-1', 'temperature': 22.1, 'waterLevel': 1},
        {'hardwareId': 'HW-MISSING', 'temperature': 22.1},
    ])

    body = response.get_json()
    assert response.status_code == 201
    assert body['storedCount'] == 2
    assert body['errors'][0]['error'] == 'not_found'


def test_ingest_nothing_valid_returns_400(client, make_device) -> None:
    make_device('GV-1')

    response = client.post('/api/ingest-sensor-data', json={'hardwareId': 'HW-GV-1', 'soilHumidity': 101})

    assert response.status_code == 400
    assert len(response.get_json()['errors']) == 1
    assert SensorReading.query.count() == 0


def test_ingest_invalid_json_returns_400(client) -> None:
    response = client.post('/api/ingest-sensor-data', data='{"hardwareId": ', content_type='application/json')

    assert response.status_code == 400
    assert response.get_json()['message'] == 'Invalid JSON payload'


def test_register_and_read_settings(client) -> None:
    created = client.post('/api/devices', json={
        'serialNumber': 'GV-7', 'hardwareIdentifier': 'HW-7', 'name': 'Roof garden',
    })
    duplicate = client.post('/api/devices', json={
        'serialNumber': 'GV-7', 'hardwareIdentifier': 'HW-8', 'name': 'Roof garden',
    })
    settings = client.get('/api/device-settings/GV-7')

    assert created.status_code == 201
    assert created.get_json()['device']['hardwareIdentifier'] == 'HW-7'
    assert duplicate.status_code == 409
    assert settings.status_code == 200
    assert settings.get_json()['irrigationThreshold'] == 30


def test_register_rejects_invalid_body(client) -> None:
    response = client.post('/api/devices', json={'serialNumber': '', 'name': 'x'})

    assert response.status_code == 400
    assert response.get_json()['errors']


def test_sensor_data_latest_and_history(client, make_device) -> None:
    make_device('GV-1')
    client.post('/api/ingest-sensor-data', json={'hardwareId': 'HW-GV-1', 'temperature': 20.0})
    client.post('/api/ingest-sensor-data', json={'hardwareId': 'HW-GV-1', 'temperature': 21.0, 'ph': 6.8})

    latest = client.get('/api/sensor-data/GV-1').get_json()
    history = client.get('/api/sensor-data/historical/GV-1?sensorType=TEMPERATURE&limit=5').get_json()
    bad_type = client.get('/api/sensor-data/historical/GV-1?sensorType=CO2')

    assert {reading['type']: reading['value'] for reading in latest} == {'PH': 6.8, 'TEMPERATURE': 21.0}
    assert [reading['value'] for reading in history] == [20.0, 21.0]
    assert bad_type.status_code == 400


def test_delete_device(client, make_device) -> None:
    make_device('GV-1')

    assert client.delete('/api/devices/GV-1').status_code == 200
    assert client.get('/api/device-commands/HW-GV-1').status_code == 404
    assert client.delete('/api/devices/GV-1').status_code == 404


def test_device_commands_missing_settings_returns_404(client, make_device) -> None:
    make_device('GV-1')
    db.session.execute(delete(DeviceSettings).where(DeviceSettings.device_serial == 'GV-1'))
    db.session.commit()

    response = client.get('/api/device-commands/HW-GV-1')

    assert response.status_code == 404
    assert response.get_json()['message'] == 'Device settings not found'
