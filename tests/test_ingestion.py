from __future__ import annotations

import pydantic
import pytest
from sqlalchemy import event, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from errors import MalformedPayloadError, StorageError, ValidationError
from ingestion import SensorSnapshot, ingest_readings
from models import Device, SensorReading, SensorType, db


def _deactivate_all() -> None:
    db.session.execute(update(Device).values(is_active=False))
    db.session.commit()


def _readings_for(serial_number: str) -> list[SensorReading]:
    return SensorReading.query.filter_by(device_serial=serial_number).order_by(SensorReading.id).all()


def test_snapshot_expands_to_one_reading_per_field(make_device) -> None:
    make_device('GV-1')

    report = ingest_readings({
        'hardwareId': 'HW-GV-1',
        'temperature': 24.5,
        'airHumidity': 61,
        'soilHumidity': 40,
        'lightLevel': 1200,
    })

    readings = _readings_for('GV-1')
    assert report.stored_count == 4
    assert report.rejected == []
    assert [r.type for r in readings] == [
        SensorType.TEMPERATURE, SensorType.AIR_HUMIDITY, SensorType.SOIL_HUMIDITY, SensorType.LIGHT,
    ]
    assert [r.unit for r in readings] == ['°C', '%', '%', 'lux']
    assert len({r.timestamp for r in readings}) == 1


def test_bad_item_does_not_block_rest_of_batch(make_device) -> None:
    make_device('GV-1')
    make_device('GV-2')
    make_device('GV-3')

    report = ingest_readings([
        {'hardwareId': 'HW-GV-1', 'temperature': 21.0},
        {'hardwareId': 'HW-GV-2', 'soilHumidity': 140},
        {'hardwareId': 'HW-GV-3', 'temperature': 22.0, 'soilHumidity': 55},
    ])

    assert report.stored_count == 3
    assert len(report.rejected) == 1
    rejected = report.rejected[0]
    assert rejected.index == 1
    assert rejected.kind == 'validation'
    assert 'soilHumidity' in rejected.reason
    assert len(_readings_for('GV-1')) == 1
    assert _readings_for('GV-2') == []
    assert len(_readings_for('GV-3')) == 2


def test_unknown_device_is_reported_not_fatal(make_device) -> None:
    make_device('GV-1')

    report = ingest_readings([
        {'hardwareId': 'HW-GHOST', 'temperature': 19.0},
        {'hardwareId': 'HW-GV-1', 'temperature': 20.0},
    ])

    assert report.stored_count == 1
    assert [item.to_dict()['error'] for item in report.rejected] == ['not_found']
    assert Device.query.filter_by(hardware_identifier='HW-GHOST').first() is None


def test_nothing_stored_fails_with_all_item_errors(make_device) -> None:
    make_device('GV-1')

    with pytest.raises(ValidationError) as excinfo:
        ingest_readings([
            {'hardwareId': 'HW-GHOST', 'temperature': 19.0},
            {'hardwareId': 'HW-GV-1', 'ph': 15},
            'not a snapshot',
        ])

    assert [err['index'] for err in excinfo.value.errors] == [0, 1, 2]
    assert SensorReading.query.count() == 0


def test_empty_snapshot_stores_nothing(make_device) -> None:
    make_device('GV-1')

    with pytest.raises(ValidationError):
        ingest_readings({'hardwareId': 'HW-GV-1'})


@pytest.mark.parametrize('payload', ['temperature=20', 42, None])
def test_wrong_shape_is_malformed(app, payload) -> None:
    with pytest.raises(MalformedPayloadError):
        ingest_readings(payload)


def test_liveness_only_for_contributing_devices(make_device) -> None:
    for serial in ('GV-A', 'GV-B', 'GV-C'):
        make_device(serial)
    _deactivate_all()

    ingest_readings([
        {'hardwareId': 'HW-GV-A', 'temperature': 20.0},
        {'hardwareId': 'HW-GV-B', 'lightLevel': 300},
    ])

    db.session.expire_all()
    a, b, c = (db.session.get(Device, serial) for serial in ('GV-A', 'GV-B', 'GV-C'))
    assert a.is_active and b.is_active
    assert a.last_update_timestamp is not None
    assert a.last_update_timestamp == b.last_update_timestamp
    assert a.last_update_timestamp == _readings_for('GV-A')[0].timestamp
    assert c.is_active is False
    assert c.last_update_timestamp is None


def test_storage_failure_rolls_back_whole_batch(make_device) -> None:
    make_device('GV-1')
    make_device('GV-2')
    _deactivate_all()

    def fail_after_flush(session, flush_context):
        raise OperationalError('INSERT INTO sensor_readings', {}, Exception('disk I/O error'))

    event.listen(Session, 'after_flush', fail_after_flush)
    try:
        with pytest.raises(StorageError):
            ingest_readings([
                {'hardwareId': 'HW-GV-1', 'temperature': 20.0, 'airHumidity': 50},
                {'hardwareId': 'HW-GV-2', 'temperature': 21.0},
            ])
    finally:
        event.remove(Session, 'after_flush', fail_after_flush)

    assert SensorReading.query.count() == 0
    db.session.expire_all()
    assert db.session.get(Device, 'GV-1').is_active is False
    assert db.session.get(Device, 'GV-1').last_update_timestamp is None


@pytest.mark.parametrize(
    ('water_level', 'unit'),
    [(1, 'state'), (0, 'state'), (42, '%'), (100, '%')],
)
def test_water_level_unit(make_device, water_level, unit) -> None:
    make_device('GV-1')

    ingest_readings({'hardwareId': 'HW-GV-1', 'waterLevel': water_level})

    reading = _readings_for('GV-1')[0]
    assert reading.type is SensorType.WATER_LEVEL
    assert reading.value == water_level
    assert reading.unit == unit


@pytest.mark.parametrize(
    'snapshot',
    [
        {'temperature': 20},
        {'hardwareId': '', 'temperature': 20},
        {'hardwareId': 'HW-1', 'temperature': '20'},
        {'hardwareId': 'HW-1', 'temperature': True},
        {'hardwareId': 'HW-1', 'soilHumidity': -1},
        {'hardwareId': 'HW-1', 'waterLevel': 101},
        {'hardwareId': 'HW-1', 'ph': 14.5},
        {'hardwareId': 'HW-1', 'lightLevel': float('nan')},
    ],
)
def test_snapshot_rejects_invalid_fields(snapshot) -> None:
    with pytest.raises(pydantic.ValidationError):
        SensorSnapshot.model_validate(snapshot)


def test_snapshot_ignores_unknown_keys() -> None:
    snapshot = SensorSnapshot.model_validate({'hardwareId': 'HW-1', 'ph': 6.5, 'firmware': '1.2.0'})

    assert snapshot.expand() == [(SensorType.PH, 6.5, 'pH')]
