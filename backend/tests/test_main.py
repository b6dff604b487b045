"""Tests for the FastAPI application."""

from fastapi.testclient import TestClient

from coindash.config import Settings
from coindash.main import create_app


class TestCreateApp:
    """Tests for create_app."""

    def test_health_before_startup(self):
        """Test the health payload when the sync core is not running."""
        client = TestClient(create_app(Settings()))
        body = client.get("/api/health").json()
        assert body == {"stream": "idle", "initialized": False, "error": None}

    def test_prices_route_mounted(self):
        """Test that the price router is included."""
        client = TestClient(create_app(Settings()))
        assert client.get("/api/prices").json()["prices"] == {}

    def test_lifespan_starts_and_stops_sync(self):
        """Test that the lifespan wires, starts and closes the sync core."""
        app = create_app(Settings(stream_url="ws://127.0.0.1:9/ws/coins", reconnect_base_ms=60_000))

        with TestClient(app) as client:
            sync = app.state.market_sync
            assert client.get("/api/health").status_code == 200

        assert sync.client.is_closed
