"""User lookups backed by the API client and a short-lived cache."""

from __future__ import annotations

from urllib.parse import quote

from loguru import logger

from subspace.cache import Cache
from subspace.models import ListResponse, MessageResponse, User
from subspace.network.client import APIClient
from subspace.network.retry import RetryPolicy

USER_CACHE_SECONDS = 300.0


class UserService:
    """Fetches users and their messages; single users are cached by id."""

    def __init__(
        self,
        client: APIClient,
        cache: Cache[str, User] | None = None,
        *,
        policy: RetryPolicy = RetryPolicy.STANDARD,
    ) -> None:
        self.client = client
        self.cache: Cache[str, User] = cache if cache is not None else Cache(USER_CACHE_SECONDS)
        self.policy = policy

    async def fetch_user(self, user_id: str) -> User:
        cached = self.cache.get(user_id)
        if cached is not None:
            logger.info("users.cache.hit user_id={}", user_id)
            return cached

        user: User = await self.client.request_with_retry(
            f"users/{quote(user_id, safe='')}",
            response_model=User,
            policy=self.policy,
        )
        logger.info("users.fetched user_id={}", user.id)
        self.cache.set(user_id, user)
        return user

    async def fetch_users(self) -> ListResponse[User]:
        return await self.client.request_with_retry(
            "users",
            response_model=ListResponse[User],
            policy=self.policy,
        )

    async def fetch_messages(self, user_id: str) -> list[MessageResponse]:
        return await self.client.request_with_retry(
            f"users/{quote(user_id, safe='')}/messages",
            response_model=list[MessageResponse],
            policy=self.policy,
        )

    def forget(self, user_id: str) -> None:
        """Drop a cached user so the next lookup hits the API."""
        self.cache.remove(user_id)
