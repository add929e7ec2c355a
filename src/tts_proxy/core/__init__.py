"""
Core infrastructure for tts-proxy.

    - config.py: settings loading and validation
    - errors.py: error codes and exception hierarchy
    - logging/: structured logging with numeric levels
    - metrics.py: Prometheus metrics
"""
