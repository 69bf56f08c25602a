"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClientConfig(BaseModel):
    """A validated configuration model for the application."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Server
    server_url: str = ""
    api_prefix: str = "/api/mobile"
    local_folder: str = ""

    # Listing
    page_size: int = 100
    request_timeout: float = 30.0

    # Downloads
    cache_dir: str = ""
    download_timeout: float = 60.0

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    @field_validator("server_url")
    @classmethod
    def validate_server_url(cls, v: str) -> str:
        """Requires an http(s) URL and drops trailing slashes."""
        if not v:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("Server URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("api_prefix")
    @classmethod
    def validate_api_prefix(cls, v: str) -> str:
        v = v.strip("/")
        return f"/{v}" if v else ""

    @field_validator("page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        """Ensures a page size the server will accept."""
        if v < 1 or v > 1000:
            raise ValueError("Page size must be between 1 and 1000.")
        return v

    @field_validator("request_timeout", "download_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be positive.")
        return v

    @property
    def is_configured(self) -> bool:
        return bool(self.server_url)

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
