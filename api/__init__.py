"""
FastAPI application for the appliance and fuel register.

This package contains the REST API and WebSocket server for managing
register entities, spreadsheet imports and background import jobs.
"""

__version__ = "1.0.0"
