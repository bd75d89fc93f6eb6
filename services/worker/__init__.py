"""Soundwave - Worker pool service."""
