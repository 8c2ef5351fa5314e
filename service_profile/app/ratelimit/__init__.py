"""
Rate limiting package for the Gateway.

Holds the fixed-window limiter that enforces per-client request budgets,
backed by process memory or Redis.
"""
