"""Root conftest — shared test configuration.

Invariants:
    - Tests never reach a real MongoDB: every manager uses FakeClientFactory
    - Settings are built with _env_file=None and explicit secrets, so the
      developer's .env and shell never leak into assertions
"""

import os

import pytest

from app.config import Settings
from tests.fake_mongo import FakeClientFactory

# Module-level app in app.main is built at import; keep it pointed at nothing real
os.environ.setdefault("MONGODB_URI", "mongodb://fake-host:27017/auth_test")


@pytest.fixture
def fake_mongo():
    return FakeClientFactory()


@pytest.fixture
def make_settings(tmp_path):
    def _make(**overrides):
        values = {
            "mongodb_uri": "mongodb://fake-host:27017/auth_test",
            "node_env": "development",
            "client_url": None,
            "jwt_secret": None,
            "email_user": None,
            "email_password": None,
            "error_log_path": str(tmp_path / "server-error.log"),
            "client_build_dir": str(tmp_path / "missing-dist"),
            "log_format": "text",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make
