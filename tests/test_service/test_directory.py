"""
Tests the user directories.
"""

import httpx
import pytest

from groupmod.config.settings import Settings
from groupmod.service.directory import (
    HttpUserDirectory,
    StaticUserDirectory,
    UserDirectoryError,
    directory_from_settings,
)


def user_service(request: httpx.Request) -> httpx.Response:
    match request.url.path:
        case "/users/alice":
            return httpx.Response(200, json={"user_id": "alice"})
        case "/users/broken":
            return httpx.Response(500)
        case _:
            return httpx.Response(404)


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


@pytest.mark.asyncio(loop_scope="session")
async def test_static_directory():
    directory = StaticUserDirectory(["alice"])

    assert await directory.user_exists("alice")
    assert not await directory.user_exists("bob")

    directory.add("bob")
    assert await directory.user_exists("bob")

    directory.remove("alice")
    assert not await directory.user_exists("alice")


@pytest.mark.asyncio(loop_scope="session")
async def test_http_directory():
    directory = HttpUserDirectory(
        base_url="http://users.test/users/", transport=httpx.MockTransport(user_service)
    )

    assert await directory.user_exists("alice")
    assert not await directory.user_exists("bob")

    with pytest.raises(UserDirectoryError):
        await directory.user_exists("broken")


@pytest.mark.asyncio(loop_scope="session")
async def test_http_directory_unreachable():
    directory = HttpUserDirectory(
        base_url="http://users.test/users", transport=httpx.MockTransport(unreachable)
    )

    with pytest.raises(UserDirectoryError):
        await directory.user_exists("alice")


def test_directory_from_settings():
    static = directory_from_settings(Settings(known_user_ids=["alice"]))
    assert isinstance(static, StaticUserDirectory)
    assert static.user_ids == {"alice"}

    remote = directory_from_settings(
        Settings(user_service_url="http://users.test/users/", user_service_timeout=1.0)
    )
    assert isinstance(remote, HttpUserDirectory)
    assert remote.base_url == "http://users.test/users"
    assert remote.timeout == 1.0
