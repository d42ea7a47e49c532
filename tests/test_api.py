"""Tests for the HTTP API and the realtime channel."""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from group_order.api.app import create_app
from tests.conftest import NOODLES, TEA

HOST = {"X-User-Id": "host", "X-User-Name": "Hana"}
ALICE = {"X-User-Id": "alice", "X-User-Name": "Alice"}
BOB = {"X-User-Id": "bob"}


def _create(client: TestClient, **body: object) -> dict:
    payload = {"hostPaymentInfo": "IBAN DE00", "deliveryFee": 30, **body}
    response = client.post("/api/sessions", json=payload, headers=HOST)
    assert response.status_code == 201
    return response.json()


def test_health(container) -> None:
    client = TestClient(create_app(container))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_session_lifecycle_over_http(container) -> None:
    with TestClient(create_app(container)) as client:
        created = _create(client, restaurantId="r-1")
        session_id = created["id"]
        assert created["status"] == "active"
        assert created["hostName"] == "Hana"
        assert created["restaurant"]["name"] == "Noodle House"
        assert created["summary"]["grandTotal"] == 30.0

        response = client.post(
            f"/api/sessions/{session_id}/orders",
            json={"items": [NOODLES]},
            headers=ALICE,
        )
        assert response.status_code == 200
        client.post(
            f"/api/sessions/{session_id}/orders",
            json={"participantName": "Bob", "items": [TEA, TEA]},
            headers=BOB,
        )

        payload = client.get(f"/api/sessions/{session_id}").json()
        assert [order["participantName"] for order in payload["orders"]] == [
            "Alice",
            "Bob",
        ]
        assert payload["summary"] == {
            "totalFood": 35.0,
            "totalDelivery": 30.0,
            "grandTotal": 65.0,
            "participantCount": 2,
            "paidCount": 0,
            "outstandingTotal": 65.0,
        }

        combined = client.get(f"/api/sessions/{session_id}/combined").json()
        assert combined["items"][1] == {
            "name": "Tea",
            "price": 5.0,
            "quantity": 2,
            "orderedBy": ["bob"],
            "orderedByNames": ["Bob"],
        }
        assert combined["text"] == "Noodles x 2\nTea x 2"

        paid = client.patch(
            f"/api/sessions/{session_id}/orders/alice/payment",
            json={"paymentSent": True},
            headers=ALICE,
        ).json()
        assert paid["summary"]["paidCount"] == 1
        assert paid["summary"]["outstandingTotal"] == 25.0

        fee = client.patch(
            f"/api/sessions/{session_id}/delivery-fee",
            json={"deliveryFee": 10},
            headers=HOST,
        ).json()
        assert fee["perParticipant"][0]["deliveryShare"] == 5.0

        info = client.patch(
            f"/api/sessions/{session_id}/payment-info",
            json={"paymentInfo": "cash"},
            headers=HOST,
        ).json()
        assert info["paymentInfo"] == "cash"

        edited = client.put(
            f"/api/sessions/{session_id}/orders/bob",
            json={"items": [TEA]},
            headers=HOST,
        ).json()
        assert edited["perParticipant"][1]["itemsTotal"] == 5.0

        removed = client.delete(
            f"/api/sessions/{session_id}/orders/bob", headers=HOST
        ).json()
        assert [order["participantId"] for order in removed["orders"]] == ["alice"]

        closed = client.post(f"/api/sessions/{session_id}/close", headers=HOST)
        assert closed.status_code == 200
        assert closed.json()["status"] == "closed"

        again = client.delete(f"/api/sessions/{session_id}", headers=HOST)
        assert again.status_code == 409
        assert again.json()["error"]["kind"] == "session_closed"


def test_error_responses(container) -> None:
    with TestClient(create_app(container)) as client:
        session_id = _create(client)["id"]

        missing_identity = client.post(
            f"/api/sessions/{session_id}/orders", json={"items": [TEA]}
        )
        assert missing_identity.status_code == 401
        assert missing_identity.json()["error"]["kind"] == "unauthorized"

        not_host = client.post(f"/api/sessions/{session_id}/close", headers=ALICE)
        assert not_host.status_code == 403
        assert not_host.json()["error"]["kind"] == "unauthorized"

        unknown = client.get("/api/sessions/nope")
        assert unknown.status_code == 404
        assert unknown.json()["error"] == {
            "kind": "not_found",
            "message": "Session nope not found",
            "retryable": False,
        }

        bad_price = client.post(
            f"/api/sessions/{session_id}/orders",
            json={"items": [{"name": "Tea", "price": -1}]},
            headers=ALICE,
        )
        assert bad_price.status_code == 422
        assert bad_price.json()["error"]["kind"] == "validation_error"

        huge_price = client.post(
            f"/api/sessions/{session_id}/orders",
            json={"items": [{"name": "Tea", "price": "1e400"}]},
            headers=ALICE,
        )
        assert huge_price.status_code == 422
        assert huge_price.json()["error"]["kind"] == "validation_error"
        assert client.get(f"/api/sessions/{session_id}").status_code == 200

        huge_fee = client.patch(
            f"/api/sessions/{session_id}/delivery-fee",
            json={"deliveryFee": "1e400"},
            headers=HOST,
        )
        assert huge_fee.status_code == 422

        malformed = client.post(
            f"/api/sessions/{session_id}/orders", json={}, headers=ALICE
        )
        assert malformed.status_code == 422
        assert malformed.json()["error"]["kind"] == "validation_error"


def test_storage_failure_is_retryable(container, repository) -> None:
    with TestClient(create_app(container)) as client:
        session_id = _create(client)["id"]
        repository.fail_writes = True

        response = client.post(
            f"/api/sessions/{session_id}/orders", json={"items": [TEA]}, headers=ALICE
        )

        assert response.status_code == 503
        assert response.json()["error"]["retryable"] is True


def test_active_feed_and_history(container) -> None:
    with TestClient(create_app(container)) as client:
        session_id = _create(client)["id"]
        client.post(
            f"/api/sessions/{session_id}/orders", json={"items": [TEA]}, headers=ALICE
        )

        feed = client.get("/api/sessions").json()
        assert [item["id"] for item in feed["sessions"]] == [session_id]

        history = client.get("/api/history", headers=ALICE).json()["history"]
        assert history == [
            {
                "session": history[0]["session"],
                "hosted": False,
                "ownTotal": 35.0,
                "paymentSent": False,
            }
        ]
        assert history[0]["session"]["id"] == session_id

        assert client.get("/api/history").status_code == 401


def test_websocket_receives_snapshot_updates_and_close(container) -> None:
    with TestClient(create_app(container)) as client:
        session_id = _create(client)["id"]

        with client.websocket_connect(f"/ws/sessions/{session_id}") as websocket:
            snapshot = websocket.receive_json()
            assert snapshot["type"] == "updated"
            assert snapshot["data"]["orders"] == []

            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong", "data": {}}

            client.post(
                f"/api/sessions/{session_id}/orders",
                json={"items": [TEA]},
                headers=ALICE,
            )
            update = websocket.receive_json()
            assert update["type"] == "updated"
            assert update["data"]["summary"]["participantCount"] == 1

            client.post(f"/api/sessions/{session_id}/close", headers=HOST)
            assert websocket.receive_json() == {
                "type": "closed",
                "data": {"id": session_id},
            }


def test_websocket_unknown_message_type(container) -> None:
    with TestClient(create_app(container)) as client:
        session_id = _create(client)["id"]

        with client.websocket_connect(f"/ws/sessions/{session_id}") as websocket:
            websocket.receive_json()
            websocket.send_json({"type": "dance"})
            reply = websocket.receive_json()

        assert reply["type"] == "error"
        assert container.broadcaster.subscriber_count(session_id) == 0


def test_websocket_unknown_session_is_closed(container) -> None:
    with TestClient(create_app(container)) as client:
        with client.websocket_connect("/ws/sessions/nope") as websocket:
            frame = websocket.receive_json()
            assert frame["type"] == "error"
            assert frame["data"]["kind"] == "not_found"
            with pytest.raises(WebSocketDisconnect) as excinfo:
                websocket.receive_json()

        assert excinfo.value.code == 4404


def test_websocket_is_closed_when_its_channel_is_pruned(container) -> None:
    with TestClient(create_app(container)) as client:
        session_id = _create(client)["id"]

        with client.websocket_connect(f"/ws/sessions/{session_id}") as websocket:
            websocket.receive_json()
            # A negative idle limit marks every channel stale.
            client.portal.call(container.broadcaster.prune_stale, -1.0)
            with pytest.raises(WebSocketDisconnect) as excinfo:
                websocket.receive_json()

        assert excinfo.value.code == 4408
        assert container.broadcaster.subscriber_count(session_id) == 0
