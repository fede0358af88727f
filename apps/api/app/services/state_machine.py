from app.models.enums import OrderStatus
from app.services.errors import InvalidTransitionError

ORDER_STATE_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING},
    # PROCESSING -> PENDING is the release path (bot stopped or deleted).
    OrderStatus.PROCESSING: {OrderStatus.COMPLETE, OrderStatus.PENDING},
    OrderStatus.COMPLETE: set(),
}


def ensure_valid_transition(current: OrderStatus, next_status: OrderStatus) -> None:
    if next_status == current:
        return

    allowed = ORDER_STATE_TRANSITIONS.get(current, set())
    if next_status not in allowed:
        raise InvalidTransitionError(
            f"Invalid state transition: {current.value} -> {next_status.value}"
        )
