import os


def _split_patterns(value):
    return [p.strip() for p in value.split(',') if p.strip()]


class Config:
    """Base configuration"""

    # Flask
    # Get SECRET_KEY from environment, or generate a non-persistent one
    SECRET_KEY = os.environ.get('SECRET_KEY')
    if not SECRET_KEY:
        import secrets
        SECRET_KEY = secrets.token_hex(32)

    # Data locations
    DATA_DIR = os.environ.get('DATA_DIR') or '/data'
    TEMP_DIR = os.environ.get('TEMP_DIR') or os.path.join(DATA_DIR, 'temp')
    LOG_DIR = os.environ.get('LOG_DIR') or os.path.join(DATA_DIR, 'logs')

    # Database (backup settings and schedule state)
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or f'sqlite:///{os.path.join(DATA_DIR, "vault_guardian.db")}'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Vault being backed up
    VAULT_PATH = os.environ.get('VAULT_PATH') or '/vault'
    VAULT_NAME = os.environ.get('VAULT_NAME')  # Defaults to the vault directory name
    METADATA_DIR_NAME = os.environ.get('METADATA_DIR_NAME') or '.obsidian'
    VAULT_EXCLUDE_PATTERNS = _split_patterns(os.environ.get('VAULT_EXCLUDE_PATTERNS', ''))

    # Scheduler
    SCHEDULER_ENABLED = True
    SCHEDULER_TICK_SECONDS = int(os.environ.get('SCHEDULER_TICK_SECONDS', 30))
    SCHEDULER_TIMEZONE = 'UTC'


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = False

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    SQLALCHEMY_DATABASE_URI = f'sqlite:///{os.path.join(DATA_DIR, "vault_guardian.db")}'
    TEMP_DIR = os.path.join(DATA_DIR, 'temp')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')
    VAULT_PATH = os.environ.get('VAULT_PATH') or os.path.join(DATA_DIR, 'vault')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SQLALCHEMY_ECHO = False


class TestingConfig(Config):
    """Testing configuration - callers override paths per test"""
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SECRET_KEY = 'test-secret-key'
    SCHEDULER_ENABLED = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig
}
