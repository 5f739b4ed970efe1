"""
config.py — Configuration for all environments.

Select a config by setting:
  APP_CONFIG=config.DevConfig      # local dev
  APP_CONFIG=config.BaseConfig     # default
  APP_CONFIG=config.TestConfig     # pytest

Without SUPABASE_URL / SUPABASE_ANON_KEY the app runs on the local SQLite
store alone.
"""

import os
import secrets

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


class BaseConfig:
    SECRET_KEY = os.getenv("FLASK_SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False
    WTF_CSRF_ENABLED = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Supabase (remote store)
    SUPABASE_URL = os.getenv("SUPABASE_URL", "")
    SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")

    # Local store / snapshot cache
    GARDEN_DB_PATH = os.getenv("GARDEN_DB_PATH", os.path.join(BASE_DIR, "data", "garden.db"))
    GARDEN_BACKUP_DIR = os.getenv("GARDEN_BACKUP_DIR", os.path.join(BASE_DIR, "backups"))

    # Garden core
    GARDEN_USER_ID = os.getenv("GARDEN_USER_ID", "00000000-0000-0000-0000-000000000000")
    GARDEN_BACKGROUND_COMMITS = os.getenv("GARDEN_BACKGROUND_COMMITS", "0").lower() in {"1", "true", "yes"}
    GARDEN_RANDOM_SEED = os.getenv("GARDEN_RANDOM_SEED", "")


class DevConfig(BaseConfig):
    """Developer-friendly settings."""
    DEBUG = True
    LOG_LEVEL = "DEBUG"


class TestConfig(BaseConfig):
    """Settings for pytest: no CSRF, no remote store, deterministic copies."""
    TESTING = True
    WTF_CSRF_ENABLED = False
    SUPABASE_URL = ""
    SUPABASE_ANON_KEY = ""
    GARDEN_BACKGROUND_COMMITS = False
    GARDEN_RANDOM_SEED = "1234"
