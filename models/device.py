from . import db
from sqlalchemy import String, DateTime, Boolean
from sqlalchemy.orm import relationship

from utils import utcnow

class Device(db.Model):
    __tablename__ = 'devices'

    serial_number = db.Column(String(64), primary_key=True)
    hardware_identifier = db.Column(String(128), unique=True, nullable=False, index=True)
    name = db.Column(String(100), nullable=False)
    plant_type = db.Column(String(100), nullable=True)
    location = db.Column(String(100), nullable=True)
    activation_date = db.Column(DateTime, default=utcnow, nullable=False)
    warranty_end_date = db.Column(DateTime, nullable=True)
    is_active = db.Column(Boolean, nullable=False, default=True)
    is_powered_by_battery = db.Column(Boolean, nullable=False, default=False)
    last_update_timestamp = db.Column(DateTime, nullable=True)

    settings = relationship('DeviceSettings', backref='device', uselist=False,
                            lazy='select', cascade="all, delete-orphan", passive_deletes=True)
    sensor_readings = relationship('SensorReading', backref='device', lazy='dynamic',
                                   cascade="all, delete-orphan", passive_deletes=True)

    @classmethod
    def by_hardware_identifier(cls, hardware_identifier):
        return cls.query.filter_by(hardware_identifier=hardware_identifier).first()

    def __repr__(self):
        return f'<Device {self.serial_number} ({self.hardware_identifier})>'
