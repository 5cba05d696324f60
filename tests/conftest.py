"""Shared pytest fixtures."""

from typing import List

import pytest

from linksort.controllers import MemoryFolderController, MemoryLinkController
from linksort.models import Link, User
from linksort.state import Store


@pytest.fixture
def store() -> Store:
    return Store()


@pytest.fixture
async def user(store: Store) -> User:
    return await store.create_user(User(email="ada@example.com", first_name="Ada"))


@pytest.fixture
async def links(store: Store, user: User) -> List[Link]:
    created = []
    for i, title in enumerate(["Python asyncio", "Rust ownership"]):
        created.append(await store.create_link(Link(
            user_id=user.id,
            url=f"https://example.com/{i}",
            title=title,
        )))
    return created


@pytest.fixture
def link_controller(store: Store) -> MemoryLinkController:
    return MemoryLinkController(store)


@pytest.fixture
def folder_controller(store: Store) -> MemoryFolderController:
    return MemoryFolderController(store)
