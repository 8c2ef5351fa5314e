"""
Profile Gateway Service package.

The gateway fetches a user and that user's posts from an upstream REST
API, validates the combined payload, and serves it with
stale-while-revalidate caching:
- Retries with backoff on transient upstream failures
- Rate limiting, compression, security headers and metrics

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.adapters: HTTP client for the upstream API.
- app.caching: SWR cache.
- app.domain: Response schemas and request orchestration.
- app.ratelimit: Fixed-window limiter and middleware helper.
"""
