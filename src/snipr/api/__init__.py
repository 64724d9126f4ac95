"""
FastAPI REST API Layer for snipr.

This package defines all HTTP endpoints:
    - routes.py: Jobs, feeds, /health, /metrics and error handlers
    - schemas.py: Request/response Pydantic models
    - dependencies.py: FastAPI dependency injection
"""
