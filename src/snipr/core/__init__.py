"""
Core Infrastructure for snipr.

This package provides foundational components:
    - config.py: Configuration loading and validation
    - errors.py: Error codes and the exception taxonomy
    - logging/: Structured logging with numeric levels
    - metrics.py: Prometheus metrics collection
"""
