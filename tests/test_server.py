"""
Web server tests — WebSocket command surface via FastAPI's TestClient.
"""

import sys
import os
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from fastapi.testclient import TestClient

import server


def receive_until(ws, msg_type, predicate=lambda m: True, limit=500):
    """Read messages (frames interleave) until one of msg_type satisfies predicate."""
    for _ in range(limit):
        msg = ws.receive_json()
        if msg.get("type") == msg_type and predicate(msg):
            return msg
    raise AssertionError(f"no {msg_type!r} message within {limit} messages")


@pytest.fixture
def client():
    with TestClient(server.app) as c:
        server.ctrl.reset()
        server.ctrl.select_preset("Basketball")
        server.ctrl.set_animation_speed(1.0)
        server.ctrl.set_start_height(169.0)
        yield c
    server.ctrl.reset()


class TestHttp:

    def test_index_page(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert "Drag Force Simulation" in resp.text


class TestWebSocket:

    def test_init_message(self, client):
        with client.websocket_connect("/ws") as ws:
            init = ws.receive_json()
        assert init["type"] == "init"
        assert [p["name"] for p in init["presets"]] == [
            "Basketball", "Tennis ball", "Bowling ball"]
        assert init["target_fps"] == server.TARGET_FPS
        assert init["frame"]["run_state"] == "IDLE"
        assert init["frame"]["state"]["height"] == 169.0
        assert {r["attr"] for r in init["ranges"]} >= {"mass", "animation_speed"}

    def test_select_preset_and_get_state(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"cmd": "select_preset", "name": "Tennis ball"})
            ws.send_json({"cmd": "get_state"})
            reply = receive_until(ws, "state")
        assert reply["data"]["object"]["name"] == "Tennis ball"
        assert reply["data"]["object"]["mass"] == 0.057

    def test_slider_values_are_clamped(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"cmd": "set_speed", "value": 50})
            ws.send_json({"cmd": "set_height", "value": 5})
            ws.send_json({"cmd": "get_state"})
            reply = receive_until(ws, "state")
        assert reply["data"]["animation_speed"] == 5.0
        assert reply["data"]["start_height"] == 10.0
        assert reply["data"]["state"]["height"] == 10.0

    def test_bad_values_reported(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("{not json")
            ws.send_json({"cmd": "set_speed", "value": "fast"})
            err = receive_until(ws, "error")
            assert err["message"]
            ws.send_json({"cmd": "warp"})
            err = receive_until(ws, "error")
            assert "warp" in err["message"]

    def test_non_finite_value_reported(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text('{"cmd": "set_speed", "value": NaN}')
            err = receive_until(ws, "error")
            assert "finite" in err["message"]
            ws.send_json({"cmd": "get_state"})
            reply = receive_until(ws, "state")
        assert reply["data"]["animation_speed"] == 1.0

    def test_get_presets(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"cmd": "get_presets"})
            reply = receive_until(ws, "presets")
        assert len(reply["data"]) == 3

    def test_start_streams_frames_then_pause(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"cmd": "start"})
            frame = receive_until(
                ws, "frame",
                lambda m: m["run_state"] == "RUNNING" and m["state"]["time"] > 0.0)
            assert frame["state"]["height"] < 169.0
            assert len(frame["history"]) >= 2

            ws.send_json({"cmd": "pause"})
            ws.send_json({"cmd": "get_state"})
            reply = receive_until(ws, "state")
            assert reply["data"]["run_state"] == "IDLE"

            ws.send_json({"cmd": "reset"})
            ws.send_json({"cmd": "get_state"})
            reply = receive_until(ws, "state")
            assert reply["data"]["state"]["time"] == 0.0
            assert reply["data"]["history"] == [{"time": 0.0, "velocity": 0.0}]
