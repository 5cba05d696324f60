"""Error types raised across the assistant.

Only StreamDecodeError and ProviderError (plus asyncio.CancelledError) ever
escape an agent run. DomainError is raised by controllers and absorbed by
tools, which report it back to the model as a tool error.
"""

from typing import Optional


class AgentError(Exception):
    """Base class for errors that abort an agent run."""


class StreamDecodeError(AgentError):
    """Raised when provider events arrive malformed or out of order."""


class ProviderError(AgentError):
    """Raised when the model provider call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DomainError(Exception):
    """Raised by link and folder controllers."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
