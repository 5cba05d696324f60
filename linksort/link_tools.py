"""
Tools the assistant uses to read and organize a user's links and folders.

Each tool parses the model's JSON input, checks the fields it needs, makes
one controller call and reports the outcome as text. Every failure comes
back as an error response for the model to read.
"""

import json
from typing import Any, Dict

from .controllers import FolderController, LinkController
from .errors import DomainError
from .models import (
    ROOT_FOLDER_ID,
    CreateFolderRequest,
    GetLinksRequest,
    GetLinksResponse,
    Pagination,
    ToolUseResponse,
    UpdateFolderRequest,
    UpdateLinkRequest,
    User,
    dump,
)
from .tools import ToolSpec, error, success

UUID_PATTERN = "^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"


def _parse(input: str) -> Dict[str, Any]:
    """Decode a JSON object; raises ValueError."""
    payload = json.loads(input)
    if not isinstance(payload, dict):
        raise ValueError("input must be a JSON object")
    return payload


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2)


class GetLinksTool:
    def __init__(self, user: User, links: LinkController):
        self.user = user
        self.links = links

    def spec(self) -> ToolSpec:
        return ToolSpec(
            name="get_links",
            description=(
                "Use this tool to query and filter the user's links. Supports search, sorting, "
                "filtering by favorites/annotations/folders/tags, and pagination. Returns basic "
                "link information - use get_link for full details."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "search": {"type": "string", "description": "Text search across link content"},
                    "sort": {
                        "type": "string",
                        "description": "Sort order: '1' for ascending by creation date, '-1' for descending",
                        "enum": ["1", "-1"],
                    },
                    "favorites": {
                        "type": "string",
                        "description": "Filter favorites: '1' to show only favorites",
                        "enum": ["1"],
                    },
                    "annotations": {
                        "type": "string",
                        "description": "Filter annotated links: '1' to show only annotated",
                        "enum": ["1"],
                    },
                    "folderId": {"type": "string", "description": "Filter by folder ID"},
                    "tagPath": {"type": "string", "description": "Filter by tag path"},
                    "userTag": {"type": "string", "description": "Filter by user tag"},
                    "page": {"type": "integer", "description": "Page number (0-based)", "minimum": 0},
                    "size": {
                        "type": "integer",
                        "description": "Page size (default 18, max 1000)",
                        "minimum": 1,
                        "maximum": 1000,
                    },
                },
                "required": [],
            },
        )

    async def use(self, tool_use_id: str, input: str) -> ToolUseResponse:
        # No input at all means no filters
        try:
            payload = _parse(input) if input.strip() else {}
        except ValueError as e:
            return error(str(e))

        req = GetLinksRequest()

        if isinstance(payload.get("search"), str):
            req.search = payload["search"]

        if isinstance(payload.get("sort"), str):
            if payload["sort"] not in ("1", "-1"):
                return error("sort parameter must be '1' (ascending) or '-1' (descending)")
            req.sort = payload["sort"]

        if isinstance(payload.get("favorites"), str):
            if payload["favorites"] != "1":
                return error("favorites parameter must be '1' to filter favorites")
            req.favorites = payload["favorites"]

        if isinstance(payload.get("annotations"), str):
            if payload["annotations"] != "1":
                return error("annotations parameter must be '1' to filter annotated links")
            req.annotations = payload["annotations"]

        if isinstance(payload.get("folderId"), str):
            req.folder_id = payload["folderId"]
        if isinstance(payload.get("tagPath"), str):
            req.tag_path = payload["tagPath"]
        if isinstance(payload.get("userTag"), str):
            req.user_tag = payload["userTag"]

        pagination = Pagination()
        page = payload.get("page")
        if isinstance(page, (int, float)) and not isinstance(page, bool):
            if page < 0:
                return error("page parameter must be >= 0")
            pagination.page = int(page)
        size = payload.get("size")
        if isinstance(size, (int, float)) and not isinstance(size, bool):
            if size < 1 or size > 1000:
                return error("size parameter must be between 1 and 1000")
            pagination.size = int(size)
        req.pagination = pagination

        try:
            links = await self.links.get_links(self.user, req)
        except DomainError as e:
            return error(e.message)

        return success(_to_json(dump(GetLinksResponse(links=links))))


class GetLinkTool:
    def __init__(self, user: User, links: LinkController):
        self.user = user
        self.links = links

    def spec(self) -> ToolSpec:
        return ToolSpec(
            name="get_link",
            description=(
                "Use this tool to retrieve all information about a given link. This includes the "
                "full text content of the link and, in many cases, an AI generated summary."
            ),
            input_schema={
                "type": "object",
                "properties": {"id": {"type": "string"}},
                "required": ["id"],
            },
        )

    async def use(self, tool_use_id: str, input: str) -> ToolUseResponse:
        try:
            payload = _parse(input)
        except ValueError as e:
            return error(str(e))

        link_id = payload.get("id")
        if not isinstance(link_id, str):
            return error("'id' was not included in the input and is required.")

        try:
            link = await self.links.get_link(self.user, link_id)
        except DomainError as e:
            return error(e.message)

        return success(_to_json(dump(link)))


class CreateFolderTool:
    def __init__(self, user: User, folders: FolderController):
        self.user = user
        self.folders = folders

    def spec(self) -> ToolSpec:
        return ToolSpec(
            name="create_folder",
            description="Use this tool to create a new folder for the user.",
            input_schema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "maxLength": 128},
                    "parentId": {"type": "string", "pattern": UUID_PATTERN},
                },
                "required": ["name"],
            },
        )

    async def use(self, tool_use_id: str, input: str) -> ToolUseResponse:
        try:
            payload = _parse(input)
        except ValueError as e:
            return error(f"Failed to parse input: {e}")

        name = payload.get("name")
        if not isinstance(name, str):
            return error("name is required and must be a string")

        req = CreateFolderRequest(name=name)
        if isinstance(payload.get("parentId"), str):
            req.parent_id = payload["parentId"]

        try:
            user = await self.folders.create_folder(self.user, req)
        except DomainError as e:
            return error(f"Failed to create folder: {e.message}")

        parent = user.folder_tree.bfs(req.parent_id or ROOT_FOLDER_ID)
        target = parent.find_by_name(name) if parent is not None else None
        if target is None:
            return error("Failed to create folder")

        return success(f"Successfully created folder '{name}'. Its ID is {target.id}")


class DeleteFolderTool:
    def __init__(self, user: User, folders: FolderController):
        self.user = user
        self.folders = folders

    def spec(self) -> ToolSpec:
        return ToolSpec(
            name="delete_folder",
            description="Use this tool to delete a folder.",
            input_schema={
                "type": "object",
                "properties": {"folderId": {"type": "string", "pattern": UUID_PATTERN}},
                "required": ["folderId"],
            },
        )

    async def use(self, tool_use_id: str, input: str) -> ToolUseResponse:
        try:
            payload = _parse(input)
        except ValueError as e:
            return error(f"Failed to parse input: {e}")

        folder_id = payload.get("folderId")
        if not isinstance(folder_id, str):
            return error("folderId is required and must be a string")

        try:
            await self.folders.delete_folder(self.user, folder_id)
        except DomainError as e:
            return error(f"Failed to delete folder: {e.message}")

        return success(f"Successfully deleted folder {folder_id}")


class RenameFolderTool:
    def __init__(self, user: User, folders: FolderController):
        self.user = user
        self.folders = folders

    def spec(self) -> ToolSpec:
        return ToolSpec(
            name="rename_folder",
            description="Use this tool to rename a folder.",
            input_schema={
                "type": "object",
                "properties": {
                    "folderId": {"type": "string", "pattern": UUID_PATTERN},
                    "name": {"type": "string", "maxLength": 128},
                },
                "required": ["folderId", "name"],
            },
        )

    async def use(self, tool_use_id: str, input: str) -> ToolUseResponse:
        try:
            payload = _parse(input)
        except ValueError as e:
            return error(f"Failed to parse input: {e}")

        folder_id = payload.get("folderId")
        if not isinstance(folder_id, str):
            return error("folderId is required and must be a string")

        name = payload.get("name")
        if not isinstance(name, str):
            return error("name is required and must be a string")

        try:
            await self.folders.update_folder(self.user, UpdateFolderRequest(id=folder_id, name=name))
        except DomainError as e:
            return error(f"Failed to update folder name: {e.message}")

        return success(f"Successfully renamed folder {folder_id} to '{name}'")


class AddLinkToFolderTool:
    def __init__(self, user: User, links: LinkController):
        self.user = user
        self.links = links

    def spec(self) -> ToolSpec:
        return ToolSpec(
            name="add_link_to_folder",
            description="Use this tool to add a link to a folder.",
            input_schema={
                "type": "object",
                "properties": {
                    "linkId": {"type": "string", "pattern": UUID_PATTERN},
                    "folderId": {"type": "string", "pattern": UUID_PATTERN},
                },
                "required": ["linkId", "folderId"],
            },
        )

    async def use(self, tool_use_id: str, input: str) -> ToolUseResponse:
        try:
            payload = _parse(input)
        except ValueError as e:
            return error(f"Failed to parse input: {e}")

        link_id = payload.get("linkId")
        if not isinstance(link_id, str):
            return error("linkId is required and must be a string")

        folder_id = payload.get("folderId")
        if not isinstance(folder_id, str):
            return error("folderId is required and must be a string")

        try:
            await self.links.update_link(self.user, UpdateLinkRequest(id=link_id, folder_id=folder_id))
        except DomainError as e:
            return error(f"Failed to update link's folder: {e.message}")

        return success(f"Successfully added link {link_id} to folder {folder_id}")


class RemoveLinkFromFolderTool:
    def __init__(self, user: User, links: LinkController):
        self.user = user
        self.links = links

    def spec(self) -> ToolSpec:
        return ToolSpec(
            name="remove_link_from_folder",
            description="Use this tool to remove a link from its current folder.",
            input_schema={
                "type": "object",
                "properties": {"linkId": {"type": "string", "pattern": UUID_PATTERN}},
                "required": ["linkId"],
            },
        )

    async def use(self, tool_use_id: str, input: str) -> ToolUseResponse:
        try:
            payload = _parse(input)
        except ValueError as e:
            return error(f"Failed to parse input: {e}")

        link_id = payload.get("linkId")
        if not isinstance(link_id, str):
            return error("linkId is required and must be a string")

        # Moving a link to the root folder takes it out of any folder
        try:
            await self.links.update_link(self.user, UpdateLinkRequest(id=link_id, folder_id=ROOT_FOLDER_ID))
        except DomainError as e:
            return error(f"Failed to update link's folder: {e.message}")

        return success(f"Successfully removed link {link_id} from its folder")
