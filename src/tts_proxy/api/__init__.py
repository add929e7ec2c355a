"""
FastAPI HTTP layer.

    - openai_compat.py: /v1/audio/speech (POST and GET)
    - routes.py: /v1/models, /health, /metrics
    - schemas.py: request/response models
    - dependencies.py: settings, service and API-key dependencies
"""
