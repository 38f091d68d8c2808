import os
from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))

dotenv_path = os.path.join(basedir, '.env')

load_dotenv(dotenv_path=dotenv_path)

class Config:
    """Base configuration class. Contains default settings."""

    SECRET_KEY = os.getenv('SECRET_KEY')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///' + os.path.join(basedir, 'greenview.db'))

    # --- General Flask Settings ---
    DEBUG = False
    TESTING = False

    # --- SQLAlchemy Settings ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'False').lower() in ('true', '1', 't')

    # --- Default Device Settings (applied at registration) ---
    DEFAULT_MEASUREMENT_INTERVAL = 5       # minutes
    DEFAULT_AUTO_IRRIGATION = True
    DEFAULT_IRRIGATION_THRESHOLD = 30      # percent
    DEFAULT_AUTO_VENTILATION = True
    DEFAULT_TEMPERATURE_ON_THRESHOLD = 30.0
    DEFAULT_TEMPERATURE_OFF_THRESHOLD = 28.0
    DEFAULT_AUTO_ROOF_CONTROL = False
    DEFAULT_ROOF_OPEN_TIME = '08:00'
    DEFAULT_ROOF_CLOSE_TIME = '18:00'
    DEFAULT_PHOTO_CAPTURE_INTERVAL = 6     # hours
    DEFAULT_TEMPERATURE_UNIT = 'CELSIUS'

    # --- Application Specific Settings ---
    WARRANTY_DAYS = int(os.getenv('WARRANTY_DAYS', 365))
    HISTORY_DEFAULT_LIMIT = 200
    HISTORY_MAX_LIMIT = 1000


    # --- Logging ---
    LOGGING_LEVEL = os.getenv('LOGGING_LEVEL', 'INFO').upper()


class DevelopmentConfig(Config):
    """Configuration for development environment."""
    DEBUG = True



class ProductionConfig(Config):
    """Configuration for production environment."""
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL')


class TestingConfig(Config):
    """Configuration for testing."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite:///:memory:')
    SQLALCHEMY_ECHO = False
    LOGGING_LEVEL = 'WARNING'


config_by_name = dict(
    development=DevelopmentConfig,
    testing=TestingConfig,
    production=ProductionConfig,
    default=DevelopmentConfig
)

def get_config():
    """Gets the configuration class based on FLASK_ENV environment variable."""
    env_name = os.getenv('FLASK_ENV', 'default').lower()
    config_class = config_by_name.get(env_name, DevelopmentConfig)

    if config_class == ProductionConfig:
        secret_key = getattr(config_class, 'SECRET_KEY', None)
        db_uri = getattr(config_class, 'SQLALCHEMY_DATABASE_URI', None)

        if not secret_key:
            raise ValueError("CRITICAL: No SECRET_KEY configured for production environment.")
        if not db_uri:
            raise ValueError("CRITICAL: No DATABASE_URL configured for production environment.")

    return config_class
