def _next_with_notifications(ws, limit=50):
    """Read snapshots until one carries notifications."""
    for _ in range(limit):
        message = ws.receive_json()
        if message["notifications"]:
            return message
    raise AssertionError("no notification received")


def test_orders_channel_sends_snapshot_and_announces_new_orders(client, menu) -> None:
    with client.websocket_connect("/ws/orders") as ws:
        first = ws.receive_json()
        assert first["type"] == "snapshot"
        assert first["orders"] == []
        assert first["notifications"] == []
        assert first["summary"]["active_orders"] == 0

        response = client.post("/api/orders", json={
            "table_id": "6",
            "items": [{"product_id": menu["Mapo Tofu"]["id"], "quantity": 2}],
        })
        assert response.status_code == 201

        message = _next_with_notifications(ws)
        assert [o["id"] for o in message["orders"]] == [response.json()["order"]["id"]]
        assert message["summary"]["active_tables"] == 1
        assert message["notifications"][0]["title"] == "New Order from Table 6"
        assert message["notifications"][0]["description"] == "2 items - $27.00"


def test_orders_channel_respects_filters(client, menu) -> None:
    client.post("/api/orders", json={
        "table_id": "1",
        "items": [{"product_id": menu["Jasmine Tea"]["id"], "quantity": 1}],
    })

    with client.websocket_connect("/ws/orders?payment_status=paid") as ws:
        assert ws.receive_json()["orders"] == []

    with client.websocket_connect("/ws/orders?status=pending") as ws:
        assert len(ws.receive_json()["orders"]) == 1


def test_waiter_calls_channel_announces_calls(client) -> None:
    with client.websocket_connect("/ws/waiter-calls") as ws:
        first = ws.receive_json()
        assert first["calls"] == []
        assert first["summary"]["pending_waiter_calls"] == 0

        client.post("/api/tables/3/waiter-calls")

        message = _next_with_notifications(ws)
        assert message["summary"]["pending_waiter_calls"] == 1
        assert message["notifications"][0]["title"] == "Table 3 needs assistance!"
        assert message["notifications"][0]["level"] == "error"


def test_client_message_forces_refresh(client) -> None:
    with client.websocket_connect("/ws/waiter-calls") as ws:
        ws.receive_json()
        ws.send_text("refresh")
        assert ws.receive_json()["type"] == "snapshot"
