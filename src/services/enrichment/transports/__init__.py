"""
Transport implementations for the enrichment service.

Supports:
- HTTP/REST and WebSocket (FastAPI)
"""
