"""Core gameplay primitives (event catalog, event bus).

Kept free of FastAPI concerns so it can be reused by API routes, CLI, and tests.
"""
