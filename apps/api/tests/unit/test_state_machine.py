import pytest

from app.models.enums import OrderStatus
from app.services.errors import InvalidTransitionError
from app.services.state_machine import ensure_valid_transition


@pytest.mark.parametrize(
    ("current", "next_status"),
    [
        (OrderStatus.PENDING, OrderStatus.PROCESSING),
        (OrderStatus.PROCESSING, OrderStatus.COMPLETE),
        (OrderStatus.PROCESSING, OrderStatus.PENDING),
        (OrderStatus.COMPLETE, OrderStatus.COMPLETE),
    ],
)
def test_allowed_transitions(current, next_status):
    ensure_valid_transition(current, next_status)


@pytest.mark.parametrize(
    ("current", "next_status"),
    [
        (OrderStatus.PENDING, OrderStatus.COMPLETE),
        (OrderStatus.COMPLETE, OrderStatus.PENDING),
        (OrderStatus.COMPLETE, OrderStatus.PROCESSING),
    ],
)
def test_rejected_transitions(current, next_status):
    with pytest.raises(InvalidTransitionError, match="Invalid state transition"):
        ensure_valid_transition(current, next_status)
