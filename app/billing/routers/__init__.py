"""
Routers package for FastAPI endpoints.

- extract: PDF upload and job status polling
"""

from . import extract

__all__ = ["extract"]
