"""
Configuration for the web app and console harness.

Values come from environment variables with local defaults. Flask
loads this with app.config.from_object(Config).
"""

import os


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Runtime settings"""

    SECRET_KEY = os.environ.get('SECRET_KEY', 'psychebridge-dev-secret-key')

    # Persistence
    STATE_DIR = os.environ.get('PSYCHEBRIDGE_STATE_DIR', 'outputs/state')
    REPORT_DIR = os.environ.get('PSYCHEBRIDGE_REPORT_DIR', 'outputs/reports')
    CATALOG_PATH = os.environ.get('PSYCHEBRIDGE_CATALOG_PATH')  # None = bundled catalog

    # Model
    MODEL_NAME = os.environ.get('PSYCHEBRIDGE_MODEL_NAME', 'mistralai/Mistral-7B-Instruct-v0.2')
    DEVICE = os.environ.get('PSYCHEBRIDGE_DEVICE', 'cuda')
    LOAD_IN_4BIT = _env_bool('PSYCHEBRIDGE_LOAD_IN_4BIT', True)

    LOG_LEVEL = os.environ.get('PSYCHEBRIDGE_LOG_LEVEL', 'INFO')
    LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

