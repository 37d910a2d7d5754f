"""Outbound request pacing.

Clients depend on the abstract pacer so the single-slot interval limiter can
later be replaced by a token bucket without touching the request path.
"""
