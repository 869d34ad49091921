"""
Billing PDF Extraction Backend.

A FastAPI service that reads billing tables out of uploaded PDFs and
normalizes their rows with an OpenAI model, tracked as asynchronous jobs.
"""

__version__ = "1.0.0"
