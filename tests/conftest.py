import os
import sys
import tempfile

BASE_DIR = tempfile.mkdtemp(prefix="pixedge-tests-")

os.environ["PIXEDGE_LOCAL_DB_PATH"] = os.path.join(BASE_DIR, "pixedge.sqlite3")
os.environ["PIXEDGE_REDIS_URL"] = ""
os.environ["PIXEDGE_CELERY_BROKER_URL"] = ""
os.environ["PIXEDGE_AUTH_SECRET"] = "test-secret-with-enough-length-0123456789"
os.environ["PIXEDGE_AUTH_COOKIE_SECURE"] = "false"
os.environ["PIXEDGE_PASSWORD_PWNED_CHECK"] = "false"
os.environ["PIXEDGE_TELEGRAM_BOT_TOKEN"] = ""
os.environ["PIXEDGE_TELEGRAM_CHAT_ID"] = ""
os.environ["PIXEDGE_PUBLIC_BASE_URL"] = "https://px.example"
os.environ["PIXEDGE_RATE_LIMIT_ENABLED"] = "false"
os.environ["PIXEDGE_LOG_FORMAT"] = "plain"
os.environ["PIXEDGE_METRICS_ENABLED"] = "false"
os.environ["PIXEDGE_OTEL_ENABLED"] = "false"

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

import importlib
import pytest


@pytest.fixture(scope="session")
def app_module():
    return importlib.import_module("pixedge.server")


@pytest.fixture()
def client(app_module):
    app = app_module.app
    app.config.update(TESTING=True)
    return app.test_client()
