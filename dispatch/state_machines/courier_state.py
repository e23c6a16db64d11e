from couriers.models import Courier, CourierStatus


class CourierStateException(Exception):
    """Raised when an invalid courier transition is attempted."""
    pass


def ensure_can_take_order(courier: Courier) -> None:
    """
    Called before a courier is attached to an order.
    Unavailable couriers (off shift, broken down) cannot receive work.
    """
    if courier.status == CourierStatus.UNAVAILABLE:
        raise CourierStateException(f"Courier {courier.id} is unavailable")


def status_after_release(remaining_active_orders: int) -> CourierStatus:
    """
    Status once an order leaves the courier's bag (delivered or redistributed).
    They stay EN_ROUTE while they still carry something.
    """
    if remaining_active_orders > 0:
        return CourierStatus.EN_ROUTE
    return CourierStatus.AVAILABLE
