"""Outbound HTTP layer shared by every integration."""

from intelbot.adapters.upstream.client import RateLimitedClient

__all__ = ["RateLimitedClient"]
