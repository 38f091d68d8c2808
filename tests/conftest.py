import os

os.environ['FLASK_ENV'] = 'testing'

import pytest

from app import app as flask_app
from models import db
import device_registry


@pytest.fixture()
def app():
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_device(app):
    """Registers a device whose hardware identifier is ``HW-<serial>``."""

    def _make(serial_number='GV-0001', **kwargs):
        kwargs.setdefault('hardware_identifier', f'HW-{serial_number}')
        return device_registry.register_device(serial_number, f'Greenhouse {serial_number}', **kwargs)

    return _make
