from .runtime import DeliveryEngine, configure_logging

__all__ = ["DeliveryEngine", "configure_logging"]
