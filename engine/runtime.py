"""
Purpose: Process lifecycle for the dispatch engine.
What it does:
- Builds every collaborator once (bus, maps client, notification channel,
  dispatcher, redistributor, tracking jobs)
- Registers all bus subscriptions through events.handlers.register_handlers
- Owns the two periodic jobs: start() launches them, stop() waits for the
  current tick and shuts them down

Single ticks stay callable directly (engine.eta_job.run_cycle(now)) for tests
and manual runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from couriers.policy import DispatchPolicy, default_dispatch_policy
from couriers.service import CourierService
from dispatch.dispatcher import Dispatcher
from dispatch.redistribution import Redistributor
from events.bus import EventBus
from events.handlers import register_handlers
from events.live_updates import LiveUpdateRelay, Publisher
from notifications.channel import WebhookChannel
from orders.service import OrderService
from routing.maps_client import MapsClient
from tracking.arrival_alerts import ArrivalAlertJob
from tracking.eta_recalculation import EtaRecalculationJob
from tracking.policy import TrackingPolicy, default_tracking_policy
from tracking.scheduler import PeriodicJob

logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@dataclass
class DeliveryEngine:
    store: object
    bus: EventBus
    maps: MapsClient
    channel: WebhookChannel
    dispatcher: Dispatcher
    redistributor: Redistributor
    orders: OrderService
    couriers: CourierService
    eta_job: EtaRecalculationJob
    alert_job: ArrivalAlertJob
    tracking_policy: TrackingPolicy
    subscriptions: List[Tuple[str, object]] = field(default_factory=list)
    jobs: List[PeriodicJob] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        store,
        *,
        maps: Optional[MapsClient] = None,
        channel: Optional[WebhookChannel] = None,
        bus: Optional[EventBus] = None,
        dispatch_policy: Optional[DispatchPolicy] = None,
        tracking_policy: Optional[TrackingPolicy] = None,
        live_publish: Optional[Publisher] = None,
    ) -> "DeliveryEngine":
        bus = bus or EventBus()
        maps = maps or MapsClient()
        channel = channel or WebhookChannel(store)
        dispatch_policy = dispatch_policy or default_dispatch_policy()
        tracking_policy = tracking_policy or default_tracking_policy()

        dispatcher = Dispatcher(store, bus, maps, policy=dispatch_policy)
        redistributor = Redistributor(store, dispatcher)
        eta_job = EtaRecalculationJob(store, bus, channel, maps, tracking_policy)
        alert_job = ArrivalAlertJob(store, bus, channel, tracking_policy)

        subscriptions = register_handlers(
            bus,
            dispatcher=dispatcher,
            redistributor=redistributor,
            arrival_alerts=alert_job,
            live_updates=LiveUpdateRelay(live_publish) if live_publish else None,
        )

        if not maps.enabled:
            logger.warning("No maps api key: geocoding, routes and ETA run in approximate fallback mode")

        return cls(
            store=store,
            bus=bus,
            maps=maps,
            channel=channel,
            dispatcher=dispatcher,
            redistributor=redistributor,
            orders=OrderService(store, bus),
            couriers=CourierService(store, bus),
            eta_job=eta_job,
            alert_job=alert_job,
            tracking_policy=tracking_policy,
            subscriptions=subscriptions,
        )

    @property
    def running(self) -> bool:
        return any(job.is_running for job in self.jobs)

    def start(self) -> None:
        if self.running:
            return
        self.jobs = [
            PeriodicJob(self.eta_job.name, self.tracking_policy.eta_interval_seconds, self.eta_job.run_cycle),
            PeriodicJob(self.alert_job.name, self.tracking_policy.alert_interval_seconds, self.alert_job.run_cycle),
        ]
        for job in self.jobs:
            job.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        for job in self.jobs:
            job.stop(timeout)
        self.jobs = []

    def shutdown(self) -> None:
        """Stop the jobs and drop every bus subscription made by build()."""
        self.stop()
        for topic, handler in self.subscriptions:
            self.bus.unsubscribe(topic, handler)
        self.subscriptions = []
