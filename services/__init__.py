"""Soundwave - Service entry points and port adapters."""
