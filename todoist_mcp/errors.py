# errors.py
from typing import Optional


class TodoistMCPError(Exception):
    """Base class for errors raised inside the Todoist MCP bridge."""


class ConfigurationError(TodoistMCPError):
    """Required Nango configuration is missing or empty."""


class BrokerRequestError(TodoistMCPError):
    """Nango was reachable but answered with a non-success status."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(
            f"Failed to get connection credentials: {status_code} - {body}")


class TransportError(TodoistMCPError):
    """Network-level failure talking to Nango or Todoist."""


class MissingTokenError(TodoistMCPError):
    """Nango answered, but the connection carries no access token."""


class MissingIdentifierError(TodoistMCPError):
    """None of the alternative identifying arguments was supplied."""


class RemoteApiError(TodoistMCPError):
    """Todoist rejected an otherwise well-formed request."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)
