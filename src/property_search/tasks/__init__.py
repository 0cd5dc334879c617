"""Batch refresh tasks run from the command line."""

from property_search.tasks.update_property import UpdatePropertyResult, update_property
from property_search.tasks.update_schools import update_schools
from property_search.tasks.update_tube import update_tube

__all__ = ["UpdatePropertyResult", "update_property", "update_schools", "update_tube"]
