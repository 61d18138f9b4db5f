"""Notification delivery."""

from .email import EmailDelivery, EmailResult

__all__ = ["EmailDelivery", "EmailResult"]
