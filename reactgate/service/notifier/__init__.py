"""Messaging platform integration."""

from .base import Notifier, NotifierError
from .slack import SlackNotifier

__all__ = ["Notifier", "NotifierError", "SlackNotifier"]
