"""
API route modules.
"""

from lesson_ingest.api.routes import lesson_urls

__all__ = ["lesson_urls"]
