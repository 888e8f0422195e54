"""FastAPI routers for the worker.

Routers are grouped by domain (meetings, suggestions, reasoning config).
"""
