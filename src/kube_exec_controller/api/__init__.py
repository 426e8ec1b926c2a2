"""Webhook front end."""

from .app_builder import WebhookAppBuilder, create_app

__all__ = ["WebhookAppBuilder", "create_app"]
