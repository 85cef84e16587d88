"""Web surface: HTML pages, review form and Telegram webhook."""

from .app import create_app

__all__ = ["create_app"]
