from .notifier import LogNotifier, NotificationEvent, NotificationType, Notifier, WebhookNotifier, notify_safely

__all__ = ["LogNotifier", "NotificationEvent", "NotificationType", "Notifier", "WebhookNotifier", "notify_safely"]
