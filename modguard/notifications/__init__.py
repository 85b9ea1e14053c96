from modguard.notifications.dispatcher import LoggingNotifier, Notification, WebhookNotifier

__all__ = ["LoggingNotifier", "Notification", "WebhookNotifier"]
