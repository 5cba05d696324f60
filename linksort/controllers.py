"""
Link and folder controllers.

The assistant's tools depend only on the LinkController and FolderController
protocols. The Memory* implementations back them with the in-memory Store.
"""

import logging
from typing import List, Protocol, Tuple

from .errors import DomainError
from .models import (
    ROOT_FOLDER_ID,
    CreateFolderRequest,
    Folder,
    GetLinksRequest,
    Link,
    UpdateFolderRequest,
    UpdateLinkRequest,
    User,
)
from .state import Store

logger = logging.getLogger(__name__)

MAX_FOLDER_COUNT = 100


class LinkController(Protocol):
    async def get_links(self, user: User, req: GetLinksRequest) -> List[Link]:
        ...

    async def get_link(self, user: User, link_id: str) -> Link:
        ...

    async def update_link(self, user: User, req: UpdateLinkRequest) -> Tuple[Link, User]:
        ...


class FolderController(Protocol):
    async def create_folder(self, user: User, req: CreateFolderRequest) -> User:
        ...

    async def update_folder(self, user: User, req: UpdateFolderRequest) -> User:
        ...

    async def delete_folder(self, user: User, folder_id: str) -> User:
        ...


class MemoryLinkController:
    def __init__(self, store: Store):
        self.store = store

    async def get_links(self, user: User, req: GetLinksRequest) -> List[Link]:
        links = await self.store.get_links_by_user(user)

        if req.search:
            needle = req.search.lower()
            links = [
                link for link in links
                if needle in link.title.lower()
                or needle in link.description.lower()
                or needle in link.corpus.lower()
                or needle in link.url.lower()
            ]
        if req.favorites == "1":
            links = [link for link in links if link.is_favorite]
        if req.annotations == "1":
            links = [link for link in links if link.is_annotated]
        if req.folder_id:
            links = [link for link in links if link.folder_id == req.folder_id]
        if req.tag_path:
            links = [link for link in links if any(p.startswith(req.tag_path) for p in link.tag_paths)]
        if req.user_tag:
            links = [link for link in links if req.user_tag in link.user_tags]

        # Newest first unless ascending order was asked for
        links.sort(key=lambda link: link.created_at, reverse=req.sort != "1")

        offset = req.pagination.offset()
        return links[offset:offset + req.pagination.limit()]

    async def get_link(self, user: User, link_id: str) -> Link:
        link = await self.store.get_link(link_id)
        if link.user_id != user.id:
            raise DomainError("link not found", status_code=404)
        return link

    async def update_link(self, user: User, req: UpdateLinkRequest) -> Tuple[Link, User]:
        link = await self.get_link(user, req.id)

        if req.folder_id is not None:
            if user.folder_tree.bfs(req.folder_id) is None:
                raise DomainError(f"folder {req.folder_id!r} not found")
            link.folder_id = req.folder_id
        if req.title is not None:
            link.title = req.title
        if req.is_favorite is not None:
            link.is_favorite = req.is_favorite
        if req.annotation is not None:
            link.annotation = req.annotation
            link.is_annotated = bool(req.annotation)
        if req.user_tags is not None:
            link.user_tags = req.user_tags

        link = await self.store.update_link(link)
        return link, user


class MemoryFolderController:
    def __init__(self, store: Store):
        self.store = store

    async def create_folder(self, user: User, req: CreateFolderRequest) -> User:
        parent_id = req.parent_id or ROOT_FOLDER_ID

        if user.folder_tree.count() >= MAX_FOLDER_COUNT:
            raise DomainError(f"You have reached the folder limit of {MAX_FOLDER_COUNT} folders.")

        parent = user.folder_tree.bfs(parent_id)
        if parent is None:
            raise DomainError(f"folder {req.parent_id!r} not found")

        parent.children.append(Folder(name=req.name))
        logger.debug(f"Created folder {req.name!r} under {parent_id} for user {user.id}")
        return await self.store.update_user(user)

    async def update_folder(self, user: User, req: UpdateFolderRequest) -> User:
        folder = user.folder_tree.bfs(req.id)
        if folder is None or folder.id == ROOT_FOLDER_ID:
            raise DomainError("folder not found")

        folder.name = req.name
        return await self.store.update_user(user)

    async def delete_folder(self, user: User, folder_id: str) -> User:
        removed = user.folder_tree.remove(folder_id)
        if removed is None:
            raise DomainError("folder not found")

        # Links in the removed subtree fall back to the root folder
        removed_ids = set(removed.ids())
        for link in await self.store.get_links_by_user(user):
            if link.folder_id in removed_ids:
                link.folder_id = ROOT_FOLDER_ID
                await self.store.update_link(link)

        return await self.store.update_user(user)
