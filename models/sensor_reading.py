import enum

from . import db
from sqlalchemy import Integer, String, ForeignKey, DateTime, Float, Enum, func

from utils import utcnow


class SensorType(str, enum.Enum):
    TEMPERATURE = 'TEMPERATURE'
    AIR_HUMIDITY = 'AIR_HUMIDITY'
    SOIL_HUMIDITY = 'SOIL_HUMIDITY'
    PH = 'PH'
    LIGHT = 'LIGHT'
    WATER_LEVEL = 'WATER_LEVEL'
    DRAINAGE = 'DRAINAGE'


class SensorReading(db.Model):
    """A single sensor observation. Rows are only ever inserted."""
    __tablename__ = 'sensor_readings'

    id = db.Column(Integer, primary_key=True, autoincrement=True)
    device_serial = db.Column(String(64), ForeignKey('devices.serial_number', ondelete='CASCADE'),
                              nullable=False, index=True)
    type = db.Column(Enum(SensorType, native_enum=False, length=20), nullable=False, index=True)
    value = db.Column(Float, nullable=False)
    unit = db.Column(String(10), nullable=False)
    # Ingestion time, not the device clock
    timestamp = db.Column(DateTime, default=utcnow, nullable=False, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'deviceId': self.device_serial,
            'type': self.type.value,
            'value': self.value,
            'unit': self.unit,
            'timestamp': self.timestamp.isoformat() + 'Z',
        }

    @classmethod
    def latest_for_device(cls, device_serial):
        """Most recent reading of each sensor type for one device, ordered by type."""
        latest = db.session.query(
            cls.type.label('type'),
            func.max(cls.timestamp).label('max_timestamp')
        ).filter(
            cls.device_serial == device_serial
        ).group_by(cls.type).subquery()

        readings = cls.query.join(
            latest,
            (cls.type == latest.c.type) & (cls.timestamp == latest.c.max_timestamp)
        ).filter(
            cls.device_serial == device_serial
        ).order_by(cls.type, cls.id.desc()).all()

        # Several rows can share the latest timestamp when one batch repeats a type
        seen = set()
        unique = []
        for reading in readings:
            if reading.type not in seen:
                seen.add(reading.type)
                unique.append(reading)
        return unique

    @classmethod
    def history(cls, device_serial, sensor_type, limit):
        """Last ``limit`` readings of one type, returned oldest first for charting."""
        readings = cls.query.filter_by(
            device_serial=device_serial, type=sensor_type
        ).order_by(
            cls.timestamp.desc(), cls.id.desc()
        ).limit(limit).all()
        readings.reverse()
        return readings

    def __repr__(self):
        return f'<SensorReading {self.type.value}={self.value}{self.unit} for {self.device_serial} @ {self.timestamp}>'
