# nango_auth.py
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import quote
import logging

import httpx
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, field_validator

from todoist_mcp.config import Settings
from todoist_mcp.errors import (
    BrokerRequestError,
    ConfigurationError,
    MissingTokenError,
    TransportError,
)

logger = logging.getLogger(__name__)

DEFAULT_SKEW_SECONDS = 300

_DATETIME = TypeAdapter(datetime)

REQUIRED_VARIABLES = (
    "NANGO_CONNECTION_ID",
    "NANGO_INTEGRATION_ID",
    "NANGO_BASE_URL",
    "NANGO_SECRET_KEY",
)


class Connection(BaseModel):
    """The one Nango connection this process talks to."""

    model_config = ConfigDict(frozen=True)

    connection_id: str = ""
    integration_id: str = ""
    base_url: str = ""
    secret_key: str = ""

    @classmethod
    def from_settings(cls, settings: Settings) -> "Connection":
        return cls(
            connection_id=settings.NANGO_CONNECTION_ID,
            integration_id=settings.NANGO_INTEGRATION_ID,
            base_url=settings.NANGO_BASE_URL,
            secret_key=settings.NANGO_SECRET_KEY,
        )

    def missing_fields(self) -> list:
        values = (self.connection_id, self.integration_id,
                  self.base_url, self.secret_key)
        return [name for name, value in zip(REQUIRED_VARIABLES, values) if not value]


class Credentials(BaseModel):
    """OAuth material stored by Nango for the connection."""

    model_config = ConfigDict(extra="allow")

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    # Raw broker value, read through expiry()
    expires_at: Any = None

    def expiry(self) -> Optional[datetime]:
        """Parsed `expires_at`, or None when it is empty or unreadable."""
        if self.expires_at in (None, ""):
            return None
        try:
            return _DATETIME.validate_python(self.expires_at)
        except ValidationError:
            logger.warning(f"Ignoring unreadable token expiry: {self.expires_at!r}")
            return None


class ConnectionCredentials(BaseModel):
    """Body of Nango's GET /connection/{id} response."""

    model_config = ConfigDict(extra="allow")

    credentials: Optional[Credentials] = None
    connection_id: Optional[str] = None
    provider_config_key: Optional[str] = None

    @field_validator("credentials", mode="before")
    @classmethod
    def drop_non_object_credentials(cls, v):
        return v if isinstance(v, dict) else None

    @property
    def access_token(self) -> Optional[str]:
        return self.credentials.access_token if self.credentials else None


def is_expired(credentials: ConnectionCredentials,
               skew_seconds: int = DEFAULT_SKEW_SECONDS,
               now: Optional[datetime] = None) -> bool:
    """
    Tells whether a token should be replaced before use.

    Credentials without an expiry never expire locally. Otherwise the token
    counts as expired once fewer than (or exactly) `skew_seconds` remain.
    Naive timestamps are read as UTC.
    """
    expires_at = credentials.credentials.expiry() if credentials.credentials else None
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (expires_at - now).total_seconds() <= skew_seconds


class NangoAuth:
    """
    Fetches Todoist OAuth credentials for a single Nango connection.

    Nango owns the token state; every call asks it for the current
    credentials with refresh_token=true so rotation happens broker-side.
    Nothing is cached here.
    """

    def __init__(self, connection: Connection, timeout: float = 30,
                 skew_seconds: int = DEFAULT_SKEW_SECONDS,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.connection = connection
        self.timeout = timeout
        self.skew_seconds = skew_seconds
        # Injected client is borrowed, never closed here
        self._http_client = http_client

    @classmethod
    def from_settings(cls, settings: Settings,
                      http_client: Optional[httpx.AsyncClient] = None) -> "NangoAuth":
        return cls(
            Connection.from_settings(settings),
            timeout=settings.REQUEST_TIMEOUT,
            skew_seconds=settings.TOKEN_REFRESH_SKEW,
            http_client=http_client,
        )

    def _ensure_configured(self):
        missing = self.connection.missing_fields()
        if missing:
            logger.error(f"Nango configuration incomplete, missing: {', '.join(missing)}")
            raise ConfigurationError(
                "Missing required Nango environment variables: " + ", ".join(missing))

    async def _get(self, url: str, params: dict, headers: dict) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.get(url, params=params, headers=headers)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(url, params=params, headers=headers)

    async def fetch_credentials(self) -> ConnectionCredentials:
        """Reads the connection from Nango, asking it to refresh if needed."""
        self._ensure_configured()
        conn = self.connection
        url = f"{conn.base_url}/connection/{quote(conn.connection_id, safe='')}"
        params = {
            "provider_config_key": conn.integration_id,
            "refresh_token": "true",
        }
        headers = {
            "Authorization": f"Bearer {conn.secret_key}",
            "Content-Type": "application/json",
        }

        logger.debug(f"Fetching Nango credentials for connection {conn.connection_id}")
        try:
            response = await self._get(url, params, headers)
        except httpx.TimeoutException as e:
            logger.error(f"Timed out fetching Nango credentials: {e}")
            raise TransportError(f"Timed out reaching Nango at {conn.base_url}") from e
        except httpx.TransportError as e:
            logger.error(f"Network error fetching Nango credentials: {e}")
            raise TransportError(f"Could not reach Nango at {conn.base_url}: {e}") from e

        if not response.is_success:
            logger.error(
                f"Nango returned {response.status_code} for connection {conn.connection_id}")
            raise BrokerRequestError(response.status_code, response.text)

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"Nango returned an unreadable credentials payload: {e}")
            raise BrokerRequestError(response.status_code, response.text) from e

        # A readable reply of the wrong shape carries no token
        try:
            return ConnectionCredentials.model_validate(body)
        except ValidationError as e:
            logger.warning(f"Nango credentials payload has an unexpected shape: {e}")
            return ConnectionCredentials()

    async def get_access_token(self) -> str:
        credentials = await self.fetch_credentials()
        return self._extract_token(credentials)

    def _extract_token(self, credentials: ConnectionCredentials) -> str:
        token = credentials.access_token
        if not token:
            logger.error(
                f"Nango connection {self.connection.connection_id} has no access token; "
                "connection not authorized")
            raise MissingTokenError("Access token not found in Nango credentials")
        return token

    def is_expired(self, credentials: ConnectionCredentials,
                   now: Optional[datetime] = None) -> bool:
        return is_expired(credentials, self.skew_seconds, now=now)

    async def refresh_if_needed(self) -> str:
        """Returns a token that is not about to expire."""
        credentials = await self.fetch_credentials()
        if self.is_expired(credentials):
            logger.info("Token is expired or expiring soon, refreshing...")
            credentials = await self.fetch_credentials()
        return self._extract_token(credentials)
