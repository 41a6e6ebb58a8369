"""Notification channel abstraction layer."""

from cadence.notifications.channels import NotificationChannel
from cadence.notifications.email_channel import EmailChannel
from cadence.notifications.log_channel import LogChannel
from cadence.notifications.notifier import RouterNotifier
from cadence.notifications.router import NotificationRouter

__all__ = [
    "EmailChannel",
    "LogChannel",
    "NotificationChannel",
    "NotificationRouter",
    "RouterNotifier",
]
