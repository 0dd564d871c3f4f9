"""
Service layer for the appliance and fuel register.

This package contains framework-agnostic import logic (field parsing,
entity configuration, sheet reading, upsert reconciliation, storage and
upload-service clients) used by the CLI, API and Celery workers.
"""

__version__ = "1.0.0"
