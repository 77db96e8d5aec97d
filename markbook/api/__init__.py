"""
API module for the REST implementation.
"""

from .rest_api import MarkbookRestAPI

__all__ = [
    "MarkbookRestAPI",
]
