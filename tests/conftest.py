import pytest
from fastapi.testclient import TestClient

from relay_server.config import Settings
from relay_server.main import create_app
from relay_server.session_manager import SessionManager


@pytest.fixture
def manager():
    return SessionManager()


@pytest.fixture
def settings(tmp_path):
    return Settings(static_dir=str(tmp_path / "no-web"), keepalive_interval=60.0)


@pytest.fixture
def app(settings, manager):
    return create_app(settings, manager)


@pytest.fixture
def client(app):
    # One portal for every websocket so they share the app's event loop
    with TestClient(app) as test_client:
        yield test_client
