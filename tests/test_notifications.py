import asyncio

import pytest
from starlette.websockets import WebSocketDisconnect

import cart
import orders
from notifications import ADMIN_CHANNEL, NotificationHub, user_channel
from schemas import ShippingAddress
from tests.conftest import ADDRESS, auth_headers


class FakeSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("closed")
        self.sent.append(data)


def test_publish_fans_out_once_per_socket():
    hub = NotificationHub()
    owner, admin_socket, stranger = FakeSocket(), FakeSocket(), FakeSocket()
    hub.subscribe(owner, [user_channel("u1")])
    hub.subscribe(admin_socket, [user_channel("a1"), ADMIN_CHANNEL])
    hub.subscribe(stranger, [user_channel("u2")])

    delivered = asyncio.run(hub.publish([user_channel("u1"), ADMIN_CHANNEL], "orderStatusChanged", {"id": "o1"}))

    assert delivered == 2
    assert owner.sent == [{"event": "orderStatusChanged", "data": {"id": "o1"}}]
    assert admin_socket.sent == owner.sent
    assert stranger.sent == []


def test_dead_sockets_are_dropped():
    hub = NotificationHub()
    dead = FakeSocket(fail=True)
    hub.subscribe(dead, [ADMIN_CHANNEL])
    assert asyncio.run(hub.publish([ADMIN_CHANNEL], "serviceRequestStatusChanged", {})) == 0
    assert hub.subscribers(ADMIN_CHANNEL) == set()


def test_socket_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws?token=nope"):
            pass


def test_status_change_is_pushed_to_owner(client, mongo, customer, admin, make_product):
    pid = make_product()
    cart.add_item(mongo, customer.id, pid, 1)
    order = orders.create_order(mongo, customer.id, ShippingAddress(**ADDRESS))
    token = auth_headers(customer)["Authorization"].split()[1]

    with client.websocket_connect(f"/ws?token={token}") as ws:
        assert ws.receive_json()["event"] == "connected"
        res = client.put(f"/orders/{order['_id']}", json={"status": "in-progress"}, headers=auth_headers(admin))
        assert res.status_code == 200
        message = ws.receive_json()

    assert message == {
        "event": "orderStatusChanged",
        "data": {"id": str(order["_id"]), "status": "in-progress", "order_number": order["order_number"]},
    }
