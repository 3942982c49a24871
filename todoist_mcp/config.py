import os
from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Configuration settings for the Todoist MCP Bridge with validation"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Nango connection settings
    NANGO_CONNECTION_ID: str = Field(
        default=os.getenv("NANGO_CONNECTION_ID", ""),
        description="Nango connection that holds the Todoist OAuth grant"
    )

    NANGO_INTEGRATION_ID: str = Field(
        default=os.getenv("NANGO_INTEGRATION_ID", ""),
        description="Nango provider config key for the Todoist integration"
    )

    NANGO_BASE_URL: str = Field(
        default=os.getenv("NANGO_BASE_URL", ""),
        description="Base URL for the Nango API"
    )

    NANGO_SECRET_KEY: str = Field(
        default=os.getenv("NANGO_SECRET_KEY", ""),
        description="Nango secret key used as bearer token against the broker"
    )

    # Todoist API settings
    TODOIST_API_URL: str = Field(
        default=os.getenv("TODOIST_API_URL", "https://api.todoist.com/rest/v2"),
        description="Base URL for direct Todoist REST calls"
    )

    # API request settings
    REQUEST_TIMEOUT: int = Field(
        default=int(os.getenv("REQUEST_TIMEOUT", "30")),
        description="Timeout for HTTP requests in seconds",
        ge=1
    )

    # Token refresh buffer
    TOKEN_REFRESH_SKEW: int = Field(
        default=int(os.getenv("TOKEN_REFRESH_SKEW", "300")),
        description="Seconds before expiry at which a token counts as expired",
        ge=0
    )

    # Transport configuration
    TRANSPORT_MODE: str = Field(
        default=os.getenv("TODOIST_TRANSPORT", "stdio").lower(),
        description="Transport mode for MCP communication (stdio or sse)"
    )

    # Logging configuration
    LOG_LEVEL: str = Field(
        default=os.getenv("LOG_LEVEL", "INFO").upper(),
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @field_validator('NANGO_BASE_URL', 'TODOIST_API_URL')
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")

    @field_validator('TRANSPORT_MODE')
    @classmethod
    def validate_transport_mode(cls, v):
        v = v.lower()
        if v not in ["stdio", "sse"]:
            raise ValueError(f"Invalid transport mode: {v}. Must be 'stdio' or 'sse'")
        return v

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v):
        v = v.upper()
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v
