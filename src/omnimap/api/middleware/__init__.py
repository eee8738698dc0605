"""API middleware package.

Cross-cutting concerns (API-key gate, request id, timing, errors) live
here so routers stay focused on operations.
"""
