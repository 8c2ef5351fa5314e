"""
Adapters package for the Profile Gateway.

Wraps the upstream users/posts API: base URL, request shapes, timeouts,
retry policy and the mapping of failures onto shared errors.
"""

from .upstream_client import UpstreamClient, fetch_json_with_retry

__all__ = [
    "UpstreamClient",
    "fetch_json_with_retry",
]
