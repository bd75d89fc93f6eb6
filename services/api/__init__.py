"""Soundwave - HTTP API service.

FastAPI service that validates job requests and enqueues them.
"""

__all__: list[str] = []
