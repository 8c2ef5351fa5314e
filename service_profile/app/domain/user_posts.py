"""
User-with-posts orchestration: parameter parsing, cached fetch, outcome mapping.
"""

import asyncio
from typing import Any, Optional

from pydantic import BaseModel, PositiveInt, ValidationError

from shared.errors import (
    InternalError,
    InvalidParameterError,
    UpstreamInvalidResponseError,
    format_validation_errors,
)
from shared.logging import get_logger

from service_profile.app.adapters.upstream_client import UpstreamClient
from service_profile.app.caching.swr_cache import SWRCache
from service_profile.app.domain.schemas import (
    UserWithPosts,
    ValidationOutcome,
    validate_user_with_posts,
)


class UserParams(BaseModel):
    """Path parameters of ``GET /api/user/{userId}``."""

    userId: PositiveInt


def parse_user_id(raw: Optional[Any]) -> int:
    """Coerce a raw path value to a positive integer (``"02"`` -> ``2``)."""
    try:
        return UserParams.model_validate({"userId": raw}).userId
    except ValidationError as exc:
        raise InvalidParameterError(
            "Invalid path parameter",
            details=format_validation_errors(exc)
        ) from exc


def cache_key(user_id: int) -> str:
    return f"user:{user_id}"


class UserPostsService:
    """Serves validated user+posts aggregates through the SWR cache."""

    def __init__(self, upstream: UpstreamClient, cache: SWRCache):
        self.upstream = upstream
        self.cache = cache
        self.logger = get_logger("gateway.user_posts")

    async def get_user_with_posts(self, user_id: int) -> UserWithPosts:
        key = cache_key(user_id)
        try:
            outcome: ValidationOutcome = await self.cache.get(
                key, lambda: self.fetch_and_validate(user_id)
            )
        except Exception as exc:
            self.logger.error(
                "Failed to fetch user data",
                user_id=user_id,
                key=key,
                error=str(exc),
                exc_info=True
            )
            raise InternalError("Failed to fetch user data") from exc

        if not outcome.success:
            self.logger.warning(
                "Upstream payload failed validation",
                user_id=user_id,
                fields=sorted(outcome.errors or {})
            )
            raise UpstreamInvalidResponseError(
                "Failed to validate user data",
                details=outcome.errors
            )

        return outcome.data

    async def fetch_and_validate(self, user_id: int) -> ValidationOutcome:
        """Fetch the user and their posts concurrently and validate the pair.

        If either call fails the other is cancelled, so no retries outlive
        the failed fetch.
        """
        tasks = [
            asyncio.ensure_future(self.upstream.get_user(user_id)),
            asyncio.ensure_future(self.upstream.get_posts(user_id)),
        ]
        try:
            user, posts = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
        return validate_user_with_posts({"user": user, "posts": posts})
