"""Soundwave - Core application modules.

Provides:
- Validated job request schemas and the error taxonomy
- SQLite job records and the huey-backed queue adapter
- The job pipeline, notification dispatcher and worker pool
"""

__version__ = "0.1.0"
