"""
Shared exceptions for AI service modules.
"""


class AIServiceError(Exception):
    """Raised when the extraction model cannot produce usable rows."""

    pass
