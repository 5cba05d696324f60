"""Data models for the assistant service."""

import uuid
from collections import deque
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ROOT_FOLDER_ID = "root"
DEFAULT_PAGE_SIZE = 18
MAX_PAGE_SIZE = 1000


class _CamelModel(BaseModel):
    """Base model serialized with camelCase keys, as the frontend expects."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Domain Models
# ============================================================================

class Folder(_CamelModel):
    """A node in a user's folder tree."""
    name: str
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    children: List["Folder"] = Field(default_factory=list)

    def bfs(self, folder_id: str) -> Optional["Folder"]:
        """Breadth-first search for a folder by ID."""
        queue = deque([self])
        while queue:
            node = queue.popleft()
            if node.id == folder_id:
                return node
            queue.extend(node.children)
        return None

    def find_by_name(self, name: str) -> Optional["Folder"]:
        """Most recently added direct child with the given name."""
        for child in reversed(self.children):
            if child.name == name:
                return child
        return None

    def count(self) -> int:
        """Number of folders below this node."""
        return sum(1 + child.count() for child in self.children)

    def remove(self, folder_id: str) -> Optional["Folder"]:
        """Detach the folder with the given ID from the tree and return it."""
        for i, child in enumerate(self.children):
            if child.id == folder_id:
                return self.children.pop(i)
            found = child.remove(folder_id)
            if found is not None:
                return found
        return None

    def ids(self) -> List[str]:
        """IDs of this folder and all its descendants."""
        result = [self.id]
        for child in self.children:
            result.extend(child.ids())
        return result


def new_folder_tree() -> Folder:
    return Folder(name="root", id=ROOT_FOLDER_ID)


class User(_CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    email: str
    first_name: str
    last_name: str = ""
    folder_tree: Folder = Field(default_factory=new_folder_tree)


class Link(_CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    url: str
    title: str = ""
    description: str = ""
    site: str = ""
    favicon: str = ""
    image: str = ""
    corpus: str = ""
    summary: str = ""
    annotation: str = ""
    folder_id: str = ROOT_FOLDER_ID
    user_tags: List[str] = Field(default_factory=list)
    tag_paths: List[str] = Field(default_factory=list)
    is_favorite: bool = False
    is_annotated: bool = False
    is_summarized: bool = False
    is_article: bool = False


class Pagination(BaseModel):
    page: int = 0
    size: int = 0

    def limit(self) -> int:
        if self.size <= 0:
            return DEFAULT_PAGE_SIZE
        return min(self.size, MAX_PAGE_SIZE)

    def offset(self) -> int:
        return max(self.page, 0) * self.limit()


class GetLinksRequest(BaseModel):
    """Filters accepted by LinkController.get_links."""
    search: str = ""
    sort: str = ""
    favorites: str = ""
    annotations: str = ""
    folder_id: str = ""
    tag_path: str = ""
    user_tag: str = ""
    pagination: Pagination = Field(default_factory=Pagination)


class UpdateLinkRequest(BaseModel):
    """Partial link update; None leaves a field unchanged."""
    id: str
    title: Optional[str] = None
    is_favorite: Optional[bool] = None
    folder_id: Optional[str] = None
    annotation: Optional[str] = None
    user_tags: Optional[List[str]] = None


class CreateFolderRequest(BaseModel):
    name: str
    parent_id: str = ""


class UpdateFolderRequest(BaseModel):
    id: str
    name: str


# ============================================================================
# Agent Message Models
# ============================================================================

class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ToolUseType(str, Enum):
    REQUEST = "request"
    RESPONSE = "response"


class ToolUseStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class ToolUseRequest(_CamelModel):
    """Raw JSON input the model supplied for a tool call."""
    model_config = ConfigDict(frozen=True)
    text: str = ""


class ToolUseResponse(_CamelModel):
    """Outcome of a tool call, reported back to the model."""
    model_config = ConfigDict(frozen=True)
    status: ToolUseStatus
    text: str


class ToolUse(_CamelModel):
    """
    One tool invocation inside a message.

    Requests carry `request`, responses carry `response`; the `id` pairs a
    response with the request it answers.
    """
    model_config = ConfigDict(frozen=True)
    id: str
    name: str
    type: ToolUseType
    request: Optional[ToolUseRequest] = None
    response: Optional[ToolUseResponse] = None


class Message(_CamelModel):
    """
    One conversation turn.

    A message is either a text message (`text` set) or a tool-use message
    (`is_tool_use` with `tool_use` set), never both.
    """
    model_config = ConfigDict(frozen=True)
    role: Role
    is_tool_use: bool = False
    tool_use: Optional[List[ToolUse]] = None
    text: Optional[str] = None

    @property
    def tool_requests(self) -> List[ToolUse]:
        if not self.is_tool_use or not self.tool_use:
            return []
        return [tu for tu in self.tool_use if tu.type == ToolUseType.REQUEST]

    @property
    def is_tool_response(self) -> bool:
        return bool(
            self.is_tool_use
            and self.tool_use
            and self.tool_use[0].type == ToolUseType.RESPONSE
        )


class PageContext(_CamelModel):
    """Where in the frontend the user sent a message from."""
    model_config = ConfigDict(frozen=True)
    route: str = ""
    query: Dict[str, str] = Field(default_factory=dict)


class StoredMessage(Message):
    """A message as persisted in a conversation."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    sequence_number: int = 0
    created_at: datetime = Field(default_factory=datetime.now)
    page_context: Optional[PageContext] = None


class Conversation(_CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    messages: List[StoredMessage] = Field(default_factory=list)
    length: int = 0


# ============================================================================
# Live Stream Events
# ============================================================================

class ToolUseDelta(_CamelModel):
    id: str
    name: str
    type: ToolUseType
    status: Optional[ToolUseStatus] = None


class ConverseEvent(_CamelModel):
    """One event on the live converse stream: a text fragment or tool activity."""
    text_delta: Optional[str] = None
    tool_use_delta: Optional[ToolUseDelta] = None


# ============================================================================
# API Request/Response Models
# ============================================================================

class ConverseRequest(_CamelModel):
    message: str = Field(..., min_length=1)
    page_context: Optional[PageContext] = None


class ConversationResponse(_CamelModel):
    conversation: Conversation


class ConversationsResponse(_CamelModel):
    conversations: List[Conversation]


class GetLinksResponse(_CamelModel):
    links: List[Link]


def dump(model: BaseModel, **kwargs: Any) -> Dict[str, Any]:
    """Serialize a model the way it appears on the wire."""
    return model.model_dump(mode="json", by_alias=True, **kwargs)
