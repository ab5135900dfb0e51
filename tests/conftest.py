"""Pytest configuration and shared fixtures."""

import logging
import os
import shutil
import tempfile

import pytest

from mrbm.config import ConfigStore
from mrbm.secrets import SecretManager
from mrbm.servers import ServerRecord


@pytest.fixture
def temp_directory():
    """Create a temporary directory for testing."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    # Cleanup
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(autouse=True)
def isolate_filesystem(temp_directory, monkeypatch):
    """Isolate filesystem operations to temporary directory."""
    monkeypatch.chdir(temp_directory)
    for var in ("MRBM_CONFIG", "MRBM_BACKUP_DIR", "MRBM_LOG_FILE", "MRBM_RETENTION_DAYS", "MRBM_KEY_FILE"):
        monkeypatch.delenv(var, raising=False)
    return temp_directory


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers installed by setup_logging during CLI tests."""
    yield
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, "_mrbm_handler", False):
            root_logger.removeHandler(handler)
            handler.close()


@pytest.fixture
def sample_server():
    """Key-authenticated server record."""
    return ServerRecord(
        name="edge1",
        host="198.51.100.7",
        key_path="/home/u/.ssh/id_ed25519",
        app_path="/opt/marzban",
        db_container="marzban-mysql-1",
        db_password="dbroot",
        bot_token="123456:ABC-token",
        chat_id="424242",
    )


@pytest.fixture
def password_server():
    """Password-authenticated server record."""
    return ServerRecord(
        name="edge2",
        host="edge2.example.com",
        port=2222,
        user="backup",
        password="s3cret",
        app_path="/srv/app",
        db_container="mariadb",
        db_password="rootpw",
        bot_token="654321:XYZ-token",
        chat_id="-100123",
    )


@pytest.fixture
def config_path(temp_directory):
    return os.path.join(temp_directory, "config.yml")


@pytest.fixture
def store(config_path):
    """Store without an encryption key (plaintext secrets)."""
    return ConfigStore(config_path, secret_manager=SecretManager())
