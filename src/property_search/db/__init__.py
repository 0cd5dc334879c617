"""Database storage for reference locations and property summaries."""

from property_search.db.storage import PropertySearchStorage

__all__ = ["PropertySearchStorage"]
