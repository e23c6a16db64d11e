import pytest

from conftest import PICKUP, TENANT_ID, north_of
from couriers.models import CourierStatus
from dispatch.decision_log import KIND_ASSIGNMENT, KIND_REDISTRIBUTION, KIND_SELECTION, dispatch_metrics
from dispatch.dispatcher import Dispatcher
from dispatch.errors import NoCourierAvailable, NotFound
from dispatch.redistribution import Redistributor
from dispatch.scoring import DispatchScorer
from dispatch.state_machines.courier_state import CourierStateException
from dispatch.state_machines.order_state import OrderAlreadyAssigned, OrderStateException
from events.bus import DELIVERY_COMPLETED, DISPATCH_COMPLETED, OrderReady
from orders.models import OrderStatus
from orders.service import OrderService


def test_dispatch_without_couriers_leaves_order_untouched(store, dispatcher, make_order, now):
    make_order("O1", destination=north_of(PICKUP, 2_000))

    with pytest.raises(NoCourierAvailable):
        dispatcher.dispatch(TENANT_ID, "O1", now=now)

    order = store.get_order(TENANT_ID, "O1")
    assert order.status == OrderStatus.READY
    assert order.courier_id is None

    [entry] = store.list_decisions(TENANT_ID)
    assert entry.kind == KIND_SELECTION
    assert entry.candidates == ()


def test_dispatch_assigns_best_courier_with_eta_and_route(store, bus, dispatcher, make_courier, make_order, now):
    events = []
    bus.subscribe(DISPATCH_COMPLETED, events.append)
    make_courier("near", location=north_of(PICKUP, 300), idle_minutes=20, phone="+5511999990000")
    make_courier("far", location=north_of(PICKUP, 6_000), idle_minutes=20)
    make_order("O1", destination=north_of(PICKUP, 3_000))

    result = dispatcher.dispatch(TENANT_ID, "O1", now=now)

    assert result.courier_id == "near"
    order = store.get_order(TENANT_ID, "O1")
    assert order.status == OrderStatus.DISPATCHED
    assert order.courier_id == "near"
    assert order.dispatched_at == now
    assert order.eta_minutes == result.eta.minutes
    assert order.eta_computed_at == now
    assert order.route_polyline
    assert order.tracking["courier_phone"] == "+5511999990000"

    courier = store.get_courier(TENANT_ID, "near")
    assert courier.active_orders == 1
    assert courier.status == CourierStatus.EN_ROUTE

    assert [e.order_id for e in events] == ["O1"]
    assert events[0].score == pytest.approx(result.score)
    assert [d.kind for d in store.list_decisions(TENANT_ID)] == [KIND_SELECTION, KIND_ASSIGNMENT]


def test_assign_geocodes_missing_destination_and_flags_it_approximate(store, dispatcher, make_courier, make_order):
    make_courier("c1")
    make_order("O1", delivery_address="Rua Augusta 500")

    dispatcher.assign(TENANT_ID, "O1", "c1")

    order = store.get_order(TENANT_ID, "O1")
    assert order.destination is not None
    assert order.destination_approximate is True


def test_assign_without_courier_position_still_dispatches(store, dispatcher, make_courier, make_order):
    make_courier("c1", location=None)
    make_order("O1", destination=north_of(PICKUP, 1_000))

    result = dispatcher.assign(TENANT_ID, "O1", "c1")

    assert result.eta is None
    order = store.get_order(TENANT_ID, "O1")
    assert order.status == OrderStatus.DISPATCHED
    assert order.eta_minutes is None


def test_assigning_twice_is_rejected(store, dispatcher, make_courier, make_order):
    make_courier("c1")
    make_courier("c2")
    make_order("O1", destination=north_of(PICKUP, 1_000))

    dispatcher.assign(TENANT_ID, "O1", "c1")
    with pytest.raises(OrderAlreadyAssigned):
        dispatcher.assign(TENANT_ID, "O1", "c2")

    assert store.get_courier(TENANT_ID, "c2").active_orders == 0
    assert store.get_order(TENANT_ID, "O1").courier_id == "c1"


def test_assign_rejects_orders_that_are_not_ready(dispatcher, make_courier, make_order):
    make_courier("c1")
    make_order("O1", status=OrderStatus.PREPARING)

    with pytest.raises(OrderStateException):
        dispatcher.assign(TENANT_ID, "O1", "c1")


def test_assign_rejects_unavailable_courier(dispatcher, make_courier, make_order):
    make_courier("c1", status=CourierStatus.UNAVAILABLE)
    make_order("O1")

    with pytest.raises(CourierStateException):
        dispatcher.assign(TENANT_ID, "O1", "c1")


def test_assign_missing_records_raise_not_found(dispatcher, make_courier, make_order):
    make_courier("c1")
    make_order("O1")

    with pytest.raises(NotFound):
        dispatcher.assign(TENANT_ID, "missing", "c1")
    with pytest.raises(NotFound):
        dispatcher.assign(TENANT_ID, "O1", "missing")
    with pytest.raises(NotFound):
        dispatcher.assign("T2", "O1", "c1")


def test_complete_delivery_releases_courier(store, dispatcher, make_courier, make_order, now):
    make_courier("c1")
    make_order("O1", destination=north_of(PICKUP, 1_000))
    dispatcher.assign(TENANT_ID, "O1", "c1", now=now)

    dispatcher.complete_delivery(TENANT_ID, "O1", now=now)

    order = store.get_order(TENANT_ID, "O1")
    assert order.status == OrderStatus.DELIVERED
    assert order.delivered_at == now
    courier = store.get_courier(TENANT_ID, "c1")
    assert courier.active_orders == 0
    assert courier.status == CourierStatus.AVAILABLE


def test_complete_delivery_keeps_courier_en_route_while_orders_remain(store, dispatcher, make_courier, make_order):
    make_courier("c1")
    make_order("O1", destination=north_of(PICKUP, 1_000))
    make_order("O2", destination=north_of(PICKUP, 1_500))
    dispatcher.assign(TENANT_ID, "O1", "c1")
    # A second order is handed over while the courier is already out.
    store.update_courier(TENANT_ID, "c1", status=CourierStatus.AVAILABLE)
    dispatcher.assign(TENANT_ID, "O2", "c1")

    dispatcher.complete_delivery(TENANT_ID, "O1")

    courier = store.get_courier(TENANT_ID, "c1")
    assert courier.active_orders == 1
    assert courier.status == CourierStatus.EN_ROUTE


def test_cancelling_a_dispatched_order_releases_courier(store, bus, dispatcher, make_courier, make_order, now):
    make_courier("c1")
    make_order("O1", destination=north_of(PICKUP, 1_000))
    dispatcher.assign(TENANT_ID, "O1", "c1", now=now)

    OrderService(store, bus).change_status(TENANT_ID, "O1", OrderStatus.CANCELLED, now=now)

    assert store.get_order(TENANT_ID, "O1").status == OrderStatus.CANCELLED
    courier = store.get_courier(TENANT_ID, "c1")
    assert courier.active_orders == 0
    assert courier.status == CourierStatus.AVAILABLE


def test_delivered_through_order_service_matches_complete_delivery(store, bus, dispatcher, make_courier, make_order, now):
    completed = []
    bus.subscribe(DELIVERY_COMPLETED, completed.append)
    make_courier("c1")
    make_order("O1", destination=north_of(PICKUP, 1_000))
    make_order("O2", destination=north_of(PICKUP, 1_500))
    dispatcher.assign(TENANT_ID, "O1", "c1", now=now)
    store.update_courier(TENANT_ID, "c1", status=CourierStatus.AVAILABLE)
    dispatcher.assign(TENANT_ID, "O2", "c1", now=now)

    OrderService(store, bus).change_status(TENANT_ID, "O1", OrderStatus.DELIVERED, now=now)

    assert store.get_order(TENANT_ID, "O1").delivered_at == now
    courier = store.get_courier(TENANT_ID, "c1")
    assert courier.active_orders == 1
    assert courier.status == CourierStatus.EN_ROUTE
    assert [(e.order_id, e.courier_id) for e in completed] == [("O1", "c1")]


def test_dispatched_order_sent_back_to_ready_is_unassigned(store, bus, dispatcher, make_courier, make_order, now):
    make_courier("c1")
    make_order("O1", destination=north_of(PICKUP, 1_000))
    dispatcher.assign(TENANT_ID, "O1", "c1", now=now)

    OrderService(store, bus).change_status(TENANT_ID, "O1", OrderStatus.READY, now=now)

    order = store.get_order(TENANT_ID, "O1")
    assert order.status == OrderStatus.READY
    assert order.courier_id is None
    assert order.eta_minutes is None
    assert store.get_courier(TENANT_ID, "c1").active_orders == 0


def test_cancelling_undispatched_order_leaves_couriers_alone(store, bus, make_courier, make_order, now):
    make_courier("c1")
    store.adjust_active_orders(TENANT_ID, "c1", +1, status=CourierStatus.EN_ROUTE)
    make_order("O1", courier_id="c1")

    OrderService(store, bus).change_status(TENANT_ID, "O1", OrderStatus.CANCELLED, now=now)

    assert store.get_courier(TENANT_ID, "c1").active_orders == 1


def test_handle_order_ready_dispatches_automatically(store, dispatcher, make_courier, make_order):
    make_courier("c1")
    make_order("O1", destination=north_of(PICKUP, 1_000))

    result = dispatcher.handle_order_ready(OrderReady(tenant_id=TENANT_ID, order_id="O1"))

    assert result.courier_id == "c1"
    assert dispatcher.handle_order_ready(OrderReady(tenant_id=TENANT_ID, order_id="O1")) is None


def test_handle_order_ready_without_courier_is_soft(store, dispatcher, make_order):
    make_order("O1")

    assert dispatcher.handle_order_ready(OrderReady(tenant_id=TENANT_ID, order_id="O1")) is None
    assert store.get_order(TENANT_ID, "O1").status == OrderStatus.READY


def test_dispatch_metrics(store, dispatcher, make_courier, make_order):
    make_courier("c1", name="Ana")
    make_order("O1", destination=north_of(PICKUP, 1_000))
    make_order("O2", destination=north_of(PICKUP, 1_000))
    dispatcher.dispatch(TENANT_ID, "O1")
    with pytest.raises(NoCourierAvailable):
        dispatcher.dispatch(TENANT_ID, "O2")

    metrics = dispatch_metrics(store, TENANT_ID)

    assert metrics.total_dispatches == 1
    assert metrics.success_rate == 50.0
    assert metrics.most_used_couriers == [{"courier_id": "c1", "name": "Ana", "deliveries": 1}]


# --- Redistribution ---

@pytest.fixture
def loaded_courier(store, dispatcher, make_courier, make_order, now):
    """Courier "leaving" holding three dispatched orders; alert flags already fired."""
    make_courier("leaving")
    for i in range(3):
        make_order(f"O{i}", destination=north_of(PICKUP, 1_000 + i * 100))
        store.update_courier(TENANT_ID, "leaving", status=CourierStatus.AVAILABLE)
        dispatcher.assign(TENANT_ID, f"O{i}", "leaving", now=now)
        store.claim_alert(TENANT_ID, f"O{i}", "eta_10_min")
    return store.get_courier(TENANT_ID, "leaving")


def test_redistribution_reports_every_order(store, dispatcher, loaded_courier, make_courier, now):
    assert loaded_courier.active_orders == 3
    make_courier("backup", location=north_of(PICKUP, 500))

    report = Redistributor(store, dispatcher).redistribute(TENANT_ID, "leaving", now=now)

    assert sorted(o.order_id for o in report.outcomes) == ["O0", "O1", "O2"]
    assert len(report.reassigned) == 1
    assert len(report.stranded) == 2
    assert report.success is False

    for outcome in report.reassigned:
        order = store.get_order(TENANT_ID, outcome.order_id)
        assert outcome.reassigned_to == "backup"
        assert order.courier_id == "backup"
        assert order.status == OrderStatus.DISPATCHED
        assert order.eta_alert_sent is False
    for outcome in report.stranded:
        order = store.get_order(TENANT_ID, outcome.order_id)
        assert outcome.reason
        assert order.status == OrderStatus.READY
        assert order.courier_id is None
        assert order.dispatched_at is None

    leaving = store.get_courier(TENANT_ID, "leaving")
    assert leaving.status == CourierStatus.UNAVAILABLE
    assert leaving.active_orders == 0
    assert store.get_courier(TENANT_ID, "backup").active_orders == 1

    [entry] = store.list_decisions(TENANT_ID, KIND_REDISTRIBUTION)
    assert entry.details["total_orders"] == 3
    assert set(entry.details["stranded"]) == {o.order_id for o in report.stranded}


def test_redistribution_never_picks_the_leaving_courier(store, dispatcher, loaded_courier, now):
    report = Redistributor(store, dispatcher).redistribute(TENANT_ID, "leaving", now=now)

    assert len(report.stranded) == 3
    assert all(o.reassigned_to is None for o in report.outcomes)


class ShiftEndingScorer(DispatchScorer):
    """Picks a courier, who then goes off shift before the assignment is committed."""
    def select(self, tenant_id, reference=None, **kwargs):
        selection = super().select(tenant_id, reference, **kwargs)
        if selection.best is not None:
            self.store.update_courier(tenant_id, selection.best.courier_id, status=CourierStatus.UNAVAILABLE)
        return selection


def test_redistribution_strands_orders_when_chosen_courier_drops_out(store, bus, maps, loaded_courier, make_courier, now):
    make_courier("backup", location=north_of(PICKUP, 500))
    racing = Dispatcher(store, bus, maps, scorer=ShiftEndingScorer(store, maps))

    report = Redistributor(store, racing).redistribute(TENANT_ID, "leaving", now=now)

    assert sorted(o.order_id for o in report.outcomes) == ["O0", "O1", "O2"]
    assert len(report.stranded) == 3
    assert any("unavailable" in o.reason for o in report.stranded)
    for order_id in ("O0", "O1", "O2"):
        order = store.get_order(TENANT_ID, order_id)
        assert order.status == OrderStatus.READY
        assert order.courier_id is None
    assert store.get_courier(TENANT_ID, "leaving").active_orders == 0
    assert store.get_courier(TENANT_ID, "backup").active_orders == 0
    [entry] = store.list_decisions(TENANT_ID, KIND_REDISTRIBUTION)
    assert set(entry.details["stranded"]) == {"O0", "O1", "O2"}


def test_redistribution_without_orders(store, dispatcher, make_courier):
    make_courier("idle")

    report = Redistributor(store, dispatcher).redistribute(TENANT_ID, "idle")

    assert report.outcomes == []
    assert report.success is True
    [entry] = store.list_decisions(TENANT_ID, KIND_REDISTRIBUTION)
    assert entry.rationale == "No pending orders to redistribute"


def test_redistribution_unknown_courier(store, dispatcher):
    with pytest.raises(NotFound):
        Redistributor(store, dispatcher).redistribute(TENANT_ID, "ghost")
