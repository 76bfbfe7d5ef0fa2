import os
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask
from flask_sqlalchemy import SQLAlchemy


# Initialize extensions
db = SQLAlchemy()

EXTENSION_KEY = 'vault_guardian'


def configure_logging(app):
    """Configure application logging"""

    log_dir = app.config['LOG_DIR']
    os.makedirs(log_dir, exist_ok=True)

    # Set log level based on environment
    log_level = logging.DEBUG if app.config.get('DEBUG', False) else logging.INFO

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)

    # File handler
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'vault_guardian.log'),
        maxBytes=10485760,  # 10MB
        backupCount=10
    )
    file_handler.setLevel(log_level)
    file_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
    )
    file_handler.setFormatter(file_formatter)

    # Configure root logger
    logging.basicConfig(level=log_level, handlers=[console_handler, file_handler])

    # Configure Flask app logger
    app.logger.setLevel(log_level)
    app.logger.addHandler(console_handler)
    app.logger.addHandler(file_handler)

    app.logger.info(f"Logging configured (level: {logging.getLevelName(log_level)})")


def create_app(config_name=None, config_overrides=None):
    """Flask application factory"""

    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'production')

    from vault_guardian.config import config
    app.config.from_object(config[config_name])
    if config_overrides:
        app.config.update(config_overrides)

    # Configure logging
    configure_logging(app)

    # Ensure required directories exist
    os.makedirs(app.config['TEMP_DIR'], exist_ok=True)
    db_uri = app.config['SQLALCHEMY_DATABASE_URI']
    if db_uri.startswith('sqlite:///') and db_uri != 'sqlite:///:memory:':
        os.makedirs(os.path.dirname(db_uri.replace('sqlite:///', '')), exist_ok=True)

    # Initialize extensions
    db.init_app(app)

    # Register blueprints
    from vault_guardian.routes import backup_routes
    app.register_blueprint(backup_routes.bp)

    # Health check endpoint
    @app.route('/health')
    def health():
        return {'status': 'healthy'}, 200

    # Create the settings table
    from vault_guardian import models  # noqa: F401
    with app.app_context():
        db.create_all()

    # Wire the backup core
    from vault_guardian.backup import BackupOrchestrator, LogNotifier, SettingsStore, VaultSource
    from vault_guardian.scheduler import BackupScheduler

    source = VaultSource(
        app.config['VAULT_PATH'],
        metadata_dir_name=app.config['METADATA_DIR_NAME'],
        exclude_patterns=app.config['VAULT_EXCLUDE_PATTERNS'],
        name=app.config.get('VAULT_NAME')
    )
    notifier = LogNotifier()
    orchestrator = BackupOrchestrator(
        source,
        settings_store=SettingsStore(app),
        notifier=notifier,
        temp_dir=app.config['TEMP_DIR']
    )
    scheduler = BackupScheduler(
        orchestrator,
        tick_seconds=app.config['SCHEDULER_TICK_SECONDS'],
        timezone_name=app.config['SCHEDULER_TIMEZONE']
    )
    app.extensions[EXTENSION_KEY] = {
        'orchestrator': orchestrator,
        'scheduler': scheduler,
        'notifier': notifier
    }

    # Start the scheduler only in the designated process
    import atexit

    is_reloader_child = os.environ.get('WERKZEUG_RUN_MAIN') == 'true'
    is_development = app.config.get('DEBUG', False)
    is_scheduler_worker = os.environ.get('SCHEDULER_WORKER', 'true').lower() == 'true'

    # Scheduler start logic:
    # - Development mode: Only in Flask reloader child process (not parent)
    # - Production mode: Only in designated scheduler worker (SCHEDULER_WORKER=true)
    if not app.config.get('SCHEDULER_ENABLED', True):
        should_start_scheduler = False
    elif is_development:
        should_start_scheduler = is_reloader_child
        app.logger.info(f"Development mode: is_reloader_child={is_reloader_child}")
    else:
        should_start_scheduler = is_scheduler_worker
        app.logger.info(f"Production mode: is_scheduler_worker={is_scheduler_worker}")

    if should_start_scheduler:
        scheduler.start()
        atexit.register(scheduler.stop)
        app.logger.info("Backup scheduler started in this process")
    else:
        # Still compute the due time so the status endpoint has a countdown
        scheduler.schedule_next_backup()
        app.logger.info("Backup scheduler not started in this process")

    return app
