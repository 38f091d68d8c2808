import datetime
import re


ROOF_TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


def check_percentage(value):
    return 0 <= value <= 100

def check_ph(ph):
    return 0 <= ph <= 14

def is_water_state(water_level):
    """Water level sensors either report a dry/wet state (0 or 1) or a percentage."""
    return water_level in (0, 1)

def check_roof_time(value):
    return bool(ROOF_TIME_PATTERN.match(value))


def utcnow():
    """Naive UTC timestamp, the form every DateTime column is stored in."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def format_timestamp(dt):
    if dt is None:
        return None
    return dt.strftime('%Y-%m-%d %H:%M:%S UTC')


def generate_hardware_identifier(serial_number, now=None):
    now = now or utcnow()
    epoch_ms = int(now.replace(tzinfo=datetime.timezone.utc).timestamp() * 1000)
    return f"{serial_number}_HWID_{epoch_ms}"
