"""
MedSnap Backend — Middleware Package
======================================

Cross-cutting concerns applied to every request.

Middleware Chain (request direction):
    [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → route

    1. Rate limit first: reject abuse before any work is done
    2. Request ID: correlation ID for logs and error bodies
    3. Logging: status and duration, tagged with the request ID
"""
