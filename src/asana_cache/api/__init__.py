"""FastAPI application for the cache service."""
