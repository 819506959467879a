"""
User lookup. User identity lives in another service; moderation only needs
to know whether an id refers to a real user.
"""

import abc

import httpx
from structlog import get_logger

from groupmod.config.settings import Settings


class UserDirectoryError(Exception):
    pass


class UserDirectory(abc.ABC):
    """
    The base class for user directories. Downstream must implement:

    - user_exists: whether the given id belongs to a registered user.
    """

    @abc.abstractmethod
    async def user_exists(self, user_id: str) -> bool:
        raise NotImplementedError


class StaticUserDirectory(UserDirectory):
    """
    A directory backed by an in-memory set of ids, used for development and
    testing.
    """

    user_ids: set[str]

    def __init__(self, user_ids: list[str] | None = None):
        self.user_ids = set(user_ids or [])

    def add(self, user_id: str):
        self.user_ids.add(user_id)

    def remove(self, user_id: str):
        self.user_ids.discard(user_id)

    async def user_exists(self, user_id: str) -> bool:
        return user_id in self.user_ids


class HttpUserDirectory(UserDirectory):
    """
    A directory that asks the user service, `GET {base_url}/{user_id}`.
    A 200 means the user exists and a 404 that they do not; anything else is
    an error.
    """

    base_url: str
    timeout: float

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def user_exists(self, user_id: str) -> bool:
        url = f"{self.base_url}/{user_id}"
        log = get_logger().bind(url=url, user_id=user_id)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            await log.awarning("directory.request_failed", error=str(e))
            raise UserDirectoryError(f"Error contacting {url}") from e

        if response.status_code == 200:
            return True

        if response.status_code == 404:
            return False

        await log.awarning("directory.unexpected_status", status=response.status_code)
        raise UserDirectoryError(
            f"Unexpected status {response.status_code} from {url}"
        )


def directory_from_settings(settings: Settings) -> UserDirectory:
    if settings.user_service_url:
        return HttpUserDirectory(
            base_url=settings.user_service_url, timeout=settings.user_service_timeout
        )

    return StaticUserDirectory(user_ids=settings.known_user_ids)
