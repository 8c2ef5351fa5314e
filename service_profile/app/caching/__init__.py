"""
Gateway caching package.

Serves previously fetched values immediately and refreshes them in the
background (stale-while-revalidate).
"""

from .swr_cache import SWRCache

__all__ = ["SWRCache"]
