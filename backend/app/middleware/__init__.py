# Middleware package init
"""
AiNote Backend — Middleware Package
=====================================

Middleware Chain:
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Request ID: accept or generate the correlation ID
    2. Logging: access log line with status and duration

    Responses pass back through the chain in reverse order, so the
    X-Request-ID header is set on every response, error responses included.
"""
