"""
WhisperLog Backend — Middleware Package
=========================================

Middleware Chain (request direction):
    Request → [Rate Limit] → [Request ID] → [Access Log] → [GZip] → [CORS] → Route

Rate limiting runs first so rejected requests cost nothing further. The
request ID is assigned before the access log line is written, so every log
record of a request, including the access line, carries the same ID.
"""
