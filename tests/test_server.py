"""
Tests for the HTTP and WebSocket endpoints.
"""

from unittest.mock import patch

from fastapi.testclient import TestClient

from src.trigger_agent.config import Config


class TestHttpEndpoints:
    """Tests for health, metrics and config endpoints."""

    def test_health(self):
        from server.app import app

        client = TestClient(app, raise_server_exceptions=False)
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_metrics(self):
        from server.app import app

        client = TestClient(app, raise_server_exceptions=False)
        body = client.get("/metrics").json()

        assert "uptime_seconds" in body
        assert "active_sessions" in body
        assert "interrupts" in body

    def test_public_config_has_no_secrets(self):
        from server.app import app

        client = TestClient(app, raise_server_exceptions=False)
        body = client.get("/config").json()

        assert body["quickHintPhrase"] == "good question"
        assert body["fullGuidancePhrase"] == "let me think"
        assert body["interruptPhrases"] == ["got it"]
        assert body["quickHintDuration"] == 10
        assert "test_openai_key" not in str(body)


class TestWebSocket:
    """Tests for the client WebSocket endpoint."""

    def test_session_round_trip(self, transport):
        from src.trigger_agent.bridge import SessionBridge

        async def fake_create_bridge(send_message, *, config=None):
            bridge = SessionBridge(
                send_message,
                config=Config(openai_api_key="k", response_create_delay_ms=0),
                transport=transport,
            )
            await bridge.start()
            return bridge

        from server.app import app, metrics

        responses_before = metrics.responses
        sessions_before = metrics.total_sessions

        with patch("src.trigger_agent.bridge.create_bridge", fake_create_bridge):
            client = TestClient(app, raise_server_exceptions=False)
            with client.websocket_connect("/ws") as ws:
                status = ws.receive_json()
                assert status == {"event": "status", "mode": "listening", "playing": False, "connected": True}

                ws.send_json({"event": "trigger", "kind": "short_hint"})
                status = ws.receive_json()
                assert status["mode"] == "generating"

                ws.send_json({"event": "stop"})

        assert "response.create" in transport.types
        assert transport.connected is False
        assert metrics.total_sessions == sessions_before + 1
        assert metrics.responses == responses_before + 1
        assert metrics.active_sessions == 0
