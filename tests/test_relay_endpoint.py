"""
Relay Endpoint Tests
====================

End-to-end scenarios through the FastAPI WebSocket endpoint.
"""

import base64

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from conftest import wait_until_sync
from screen_relay.main import app, get_hub


@pytest.fixture
def client():
    """TestClient with lifespan (fresh hub per test)."""
    with TestClient(app) as test_client:
        yield test_client


def consumers_connected(count: int):
    return lambda: get_hub().consumer_count() == count


class TestHttpEndpoints:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_metrics_counts_connections(self, client):
        with client.websocket_connect("/?role=producer&token=abc"):
            with client.websocket_connect("/?role=consumer&token=abc"):
                wait_until_sync(consumers_connected(1))
                wait_until_sync(lambda: get_hub().has_producer("abc"))
                body = client.get("/metrics").json()

        assert body["sessions"] == 1
        assert body["producers"] == 1
        assert body["consumers"] == 1


class TestRelayScenarios:

    def test_fan_out_and_late_join(self, client):
        """Early consumer gets 1,2,3; a consumer joining after P2 gets 2 then 3."""
        with client.websocket_connect("/?role=producer&token=abc") as producer:
            with client.websocket_connect("/?role=consumer&token=abc") as early:
                wait_until_sync(consumers_connected(1))

                producer.send_bytes(b"P1")
                producer.send_bytes(b"P2")
                first = early.receive_json()
                second = early.receive_json()

                with client.websocket_connect("/?role=consumer&token=abc") as late:
                    cached = late.receive_json()
                    wait_until_sync(consumers_connected(2))

                    producer.send_bytes(b"P3")
                    third = early.receive_json()
                    late_third = late.receive_json()

        assert [first["frameId"], second["frameId"], third["frameId"]] == [1, 2, 3]
        assert all(m["type"] == "frame" for m in (first, second, third))
        assert base64.b64decode(first["data"]) == b"P1"
        assert cached["frameId"] == 2
        assert base64.b64decode(cached["data"]) == b"P2"
        assert late_third["frameId"] == 3

    def test_text_payload_is_relayed_unchanged(self, client):
        with client.websocket_connect("/ws?role=producer&token=abc") as producer:
            with client.websocket_connect("/ws?role=consumer&token=abc") as consumer:
                wait_until_sync(consumers_connected(1))
                producer.send_text("L2l0LWlzLWI2NA==")
                message = consumer.receive_json()

        assert message["data"] == "L2l0LWlzLWI2NA=="
        assert message["frameId"] == 1

    def test_producer_reconnect_restarts_numbering(self, client):
        hub = get_hub()
        with client.websocket_connect("/?role=consumer&token=abc") as consumer:
            wait_until_sync(consumers_connected(1))

            with client.websocket_connect("/?role=producer&token=abc") as producer:
                producer.send_bytes(b"P1")
                producer.send_bytes(b"P2")
                assert consumer.receive_json()["frameId"] == 1
                assert consumer.receive_json()["frameId"] == 2

            wait_until_sync(lambda: not hub.has_producer("abc"))
            assert hub.latest_frame_id("abc") is None

            with client.websocket_connect("/?role=producer&token=abc") as producer:
                producer.send_bytes(b"Q1")
                message = consumer.receive_json()

        assert message["frameId"] == 1
        assert base64.b64decode(message["data"]) == b"Q1"

    def test_second_producer_is_closed_with_policy_violation(self, client):
        with client.websocket_connect("/?role=producer&token=abc"):
            wait_until_sync(lambda: get_hub().has_producer("abc"))
            with client.websocket_connect("/?role=producer&token=abc") as second:
                with pytest.raises(WebSocketDisconnect) as exc_info:
                    second.receive_text()

        assert exc_info.value.code == 1008
        assert get_hub().metrics.rejected_producers == 1

    def test_sessions_are_isolated(self, client):
        with client.websocket_connect("/?role=producer&token=one") as producer_one, \
                client.websocket_connect("/?role=producer&token=two") as producer_two, \
                client.websocket_connect("/?role=consumer&token=two") as viewer_two:
            wait_until_sync(consumers_connected(1))

            producer_one.send_bytes(b"ONE")
            producer_two.send_bytes(b"TWO")
            message = viewer_two.receive_json()

        assert base64.b64decode(message["data"]) == b"TWO"
        assert message["frameId"] == 1
