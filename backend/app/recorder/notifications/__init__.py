"""
Notifications Module

Fan-out of session events to push-channel consumers.
"""

from .notification_hub import NotificationHub

__all__ = [
    "NotificationHub"
]
