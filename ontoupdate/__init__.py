import os
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask
from config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def configure_logging(app):
    """
    Configures the root logger from app config.
    LOG_LEVEL sets the console level; LOG_FILE, when set, adds a rotating file
    handler at DEBUG so verbose resource dumps are kept on disk.
    """
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)

    log_file = app.config.get('LOG_FILE')
    if not log_file:
        return
    try:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(log_dir, exist_ok=True)
        # Rotate logs: 5 files, 5MB each
        file_handler = RotatingFileHandler(log_file, maxBytes=5*1024*1024, backupCount=5, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(logging.DEBUG)
        logging.getLogger().addHandler(file_handler)
        logger.info(f"--- File logging initialized to {log_file} (Level: DEBUG) ---")
    except OSError as e:
        # File logging is optional; console logging stays in place
        logger.error(f"Failed to set up file logging to {log_file}: {e}", exc_info=True)


def create_app(config_class=Config):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)

    configure_logging(app)

    from ontoupdate.terminology import bp as terminology_bp
    app.register_blueprint(terminology_bp)
    logger.debug(f"Registered terminology blueprint (IG: {app.config['IG_LOCATION']}, server: {app.config['ONTO_LOCATION']})")

    return app
