"""Delivery subsystem: reliability policies and outbound channels."""

from permission_hook.delivery.reliability import CircuitBreaker, RateLimiter, RetryPolicy, deliver
from permission_hook.delivery.update import UpdateChecker, is_newer_version
from permission_hook.delivery.webhook import WebhookNotifier, WebhookPreset, format_payload

__all__ = [
    "CircuitBreaker",
    "RateLimiter",
    "RetryPolicy",
    "UpdateChecker",
    "WebhookNotifier",
    "WebhookPreset",
    "deliver",
    "format_payload",
    "is_newer_version",
]
