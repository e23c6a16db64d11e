from .channel import WebhookChannel, NotificationResult

__all__ = ["WebhookChannel", "NotificationResult"]
