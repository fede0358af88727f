import uuid
from datetime import timedelta

import pytest
from sqlalchemy import update

from app.models.ids import utc_now
from app.models.order import Order


@pytest.fixture
def create_order(client):
    def _create(order_type: str = "NORMAL") -> dict:
        response = client.post("/api/v1/orders", json={"type": order_type})
        assert response.status_code == 201
        return response.json()

    return _create


@pytest.fixture
def create_bot(client):
    def _create(bot_type: str = "NORMAL") -> dict:
        response = client.post("/api/v1/bots", json={"type": bot_type})
        assert response.status_code == 201
        return response.json()

    return _create


@pytest.fixture
def age_processing(db_session):
    """Move an order's processing start into the past."""

    def _age(order_id: str, seconds: int) -> None:
        db_session.execute(
            update(Order)
            .where(Order.id == uuid.UUID(order_id))
            .values(processing_started_at=utc_now() - timedelta(seconds=seconds))
        )
        db_session.commit()

    return _age
