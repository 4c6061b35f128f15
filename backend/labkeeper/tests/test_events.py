import json

import pytest
from fastapi.websockets import WebSocketDisconnect

from labkeeper import pubsub
from labkeeper.auth import create_access_token
from labkeeper.tests.conftest import make_user


class RecordingRedis:
    def __init__(self):
        self.published = []

    async def publish(self, channel, message):
        self.published.append((channel, json.loads(message)))


class BrokenRedis:
    async def publish(self, channel, message):
        raise ConnectionError("redis is down")


@pytest.fixture
def recorder(monkeypatch):
    fake = RecordingRedis()

    async def fake_get_redis():
        return fake

    monkeypatch.setattr(pubsub, "get_redis", fake_get_redis)
    return fake


def _add(client, setup):
    return client.post(
        f"/api/lab/{setup['lab'].id}/inventory",
        json={"itemId": setup["item"].id, "location": "Shelf", "itemUnit": "mL", "currentStock": 5},
        headers=setup["headers"],
    )


def test_mutations_publish_lab_events(client, manager_setup, recorder):
    assert _add(client, manager_setup).status_code == 201
    client.post(
        f"/api/lab/{manager_setup['lab'].id}/inventory/{manager_setup['item'].id}/take",
        json={"amount": 2},
        headers=manager_setup["headers"],
    )

    channels = {channel for channel, _ in recorder.published}
    assert channels == {f"lab:{manager_setup['lab'].id}"}
    types = [event["type"] for _, event in recorder.published]
    assert types == ["item_added", "stock_changed"]
    assert recorder.published[-1][1]["currentStock"] == 3


def test_publish_failures_do_not_fail_the_request(client, manager_setup, monkeypatch):
    async def broken_get_redis():
        return BrokenRedis()

    monkeypatch.setattr(pubsub, "get_redis", broken_get_redis)
    assert _add(client, manager_setup).status_code == 201


def test_websocket_rejects_missing_and_outsider_tokens(client, db, manager_setup):
    with pytest.raises(WebSocketDisconnect) as missing:
        with client.websocket_connect(f"/ws/labs/{manager_setup['lab'].id}?token=garbage") as ws:
            ws.receive_text()
    assert missing.value.code == 4401

    outsider = make_user(db)
    token = create_access_token({"sub": outsider.email})
    with pytest.raises(WebSocketDisconnect) as denied:
        with client.websocket_connect(f"/ws/labs/{manager_setup['lab'].id}?token={token}") as ws:
            ws.receive_text()
    assert denied.value.code == 4403
