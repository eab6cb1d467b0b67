"""API routes"""

from syncbridge.api import sync, syncs, users, webhooks

__all__ = ["webhooks", "syncs", "users", "sync"]
