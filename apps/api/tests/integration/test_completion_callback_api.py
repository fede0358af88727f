import asyncio
import json

import pytest
from scheduler_fixtures import issue_callback_signature

from app.config import settings
from app.routers import orders as orders_router

CALLBACK_PATH = "/api/v1/orders/complete"


@pytest.fixture
def processing_order(client, create_order, create_bot):
    order = create_order()
    bot = create_bot()
    claimed = client.post(f"/api/v1/bots/{bot['id']}/claim").json()
    assert claimed["status"] == "OK"
    return order, bot


@pytest.fixture
def signing_keys(monkeypatch):
    monkeypatch.setattr(settings, "qstash_current_signing_key", "current-key")
    monkeypatch.setattr(settings, "qstash_next_signing_key", "next-key")
    return "current-key", "next-key"


def _body(order, bot) -> bytes:
    return json.dumps({"order_id": order["id"], "bot_id": bot["id"]}).encode()


def test_unsigned_callback_accepted_in_testing_without_keys(
    client, processing_order, age_processing
):
    order, bot = processing_order
    age_processing(order["id"], 10)

    response = client.post(CALLBACK_PATH, content=_body(order, bot))

    assert response.status_code == 200
    assert response.json() == {"completed": True, "order_id": order["id"]}
    assert client.get(f"/api/v1/orders/{order['id']}").json()["status"] == "COMPLETE"
    assert client.get(f"/api/v1/bots/{bot['id']}").json()["status"] == "IDLE"


def test_duplicate_callback_reports_not_completed(client, processing_order, age_processing):
    order, bot = processing_order
    age_processing(order["id"], 10)

    client.post(CALLBACK_PATH, content=_body(order, bot))
    response = client.post(CALLBACK_PATH, content=_body(order, bot))

    assert response.status_code == 200
    assert response.json()["completed"] is False


def test_early_callback_leaves_order_processing(client, processing_order):
    order, bot = processing_order

    response = client.post(CALLBACK_PATH, content=_body(order, bot))

    assert response.json()["completed"] is False
    assert client.get(f"/api/v1/orders/{order['id']}").json()["status"] == "PROCESSING"


def test_signed_callback_with_next_key(client, processing_order, signing_keys, age_processing):
    order, bot = processing_order
    age_processing(order["id"], 10)
    body = _body(order, bot)

    response = client.post(
        CALLBACK_PATH,
        content=body,
        headers={"Upstash-Signature": issue_callback_signature(body, signing_keys[1])},
    )

    assert response.status_code == 200
    assert response.json()["completed"] is True


def test_missing_signature_is_403(client, processing_order, signing_keys):
    order, bot = processing_order

    response = client.post(CALLBACK_PATH, content=_body(order, bot))

    assert response.status_code == 403


def test_bad_signature_is_403(client, processing_order, signing_keys):
    order, bot = processing_order
    body = _body(order, bot)

    response = client.post(
        CALLBACK_PATH,
        content=body,
        headers={"Upstash-Signature": issue_callback_signature(b"other body", signing_keys[0])},
    )

    assert response.status_code == 403
    assert client.get(f"/api/v1/orders/{order['id']}").json()["status"] == "PROCESSING"


def test_missing_keys_outside_testing_is_500(client, processing_order, monkeypatch):
    order, bot = processing_order
    monkeypatch.setattr(settings, "testing", False)

    response = client.post(CALLBACK_PATH, content=_body(order, bot))

    assert response.status_code == 500
    assert response.json()["detail"]["code"] == "CONFIGURATION"


def test_malformed_payload_is_400(client):
    response = client.post(CALLBACK_PATH, content=b'{"order_id": "not-a-uuid"}')

    assert response.status_code == 400


def test_callback_finalizes_off_the_event_loop(
    client, processing_order, age_processing, monkeypatch
):
    order, bot = processing_order
    age_processing(order["id"], 10)
    loop_threads = []
    real_complete = orders_router.complete_order

    def _complete(*args, **kwargs):
        try:
            asyncio.get_running_loop()
            loop_threads.append(True)
        except RuntimeError:
            loop_threads.append(False)
        return real_complete(*args, **kwargs)

    monkeypatch.setattr(orders_router, "complete_order", _complete)

    response = client.post(CALLBACK_PATH, content=_body(order, bot))

    assert response.json()["completed"] is True
    assert loop_threads == [False]
