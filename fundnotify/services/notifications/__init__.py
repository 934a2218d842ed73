from fundnotify.services.notifications.dispatcher import NotificationCreate
from fundnotify.services.notifications.read_tracker import NotificationFilters

__all__ = [
    "NotificationCreate",
    "NotificationFilters",
]
