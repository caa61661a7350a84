"""Configuration management for Style Studio.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the STYLESTUDIO_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (STYLESTUDIO_* prefix)
2. .env file in the project root
3. Default values defined in StudioConfig

The Gemini API key is the one exception to the prefix rule: it is read from
``STYLESTUDIO_GEMINI_API_KEY`` or from the plain ``GEMINI_API_KEY`` variable
that the Google tooling already uses.

Example .env file:
    GEMINI_API_KEY=...
    STYLESTUDIO_DEFAULT_IMAGE_MODEL=gemini-3-pro-image-preview
    STYLESTUDIO_DATA_DIR=data
    STYLESTUDIO_STORE_BACKEND=json

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
This ensures a single source of truth for all configuration values across
the application.

Usage Example
-------------
    from stylestudio.core.config import config

    print(config.extraction_model)
    print(config.data_dir)

Model Identities
----------------
Two kinds of model are used and they are deliberately kept apart:
- extraction_model: a descriptive/analysis model that turns reference images
  into a textual style descriptor. Fixed per deployment.
- image_models: image-synthesis models the user picks from per render.

See Also
--------
- StudioConfig: Full configuration class documentation
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ImageModelOption(BaseModel):
    """A selectable image-synthesis model."""

    id: str
    label: str
    description: str = ""


DEFAULT_IMAGE_MODELS = [
    ImageModelOption(
        id="gemini-3.1-flash-image-preview",
        label="Gemini 3.1 Flash",
        description="Fast rendering and exploration",
    ),
    ImageModelOption(
        id="gemini-3-pro-image-preview",
        label="Gemini 3 Pro",
        description="Highest quality detail and adherence",
    ),
]


class StudioConfig(BaseSettings):
    """Main configuration for Style Studio.

    This class uses Pydantic Settings to manage all application configuration.
    Values are loaded from environment variables with the STYLESTUDIO_ prefix,
    with fallback to defaults defined here.

    Attributes
    ----------
    External Model Settings:
        gemini_api_key : str | None
            API key for the Gemini API (also read from GEMINI_API_KEY)
        extraction_model : str
            Analysis model used to extract style descriptors
        image_models : list[ImageModelOption]
            Image-synthesis models offered to the user
        default_image_model : str
            Model used when a render request does not name one
        request_timeout : int
            Timeout in seconds for a single external model call

    Generation Settings:
        aspect_ratios : list[str]
            Aspect ratios offered to the user
        default_aspect_ratio : str
            Aspect ratio used when a render request does not name one

    Style Project Policy:
        min_style_images : int
            Minimum reference images for image-based extraction
        max_style_images : int
            Maximum reference images accepted per project

    Storage:
        store_backend : Literal["json", "memory"]
            Persistence backend for projects, style images and renders
        data_dir : Path
            Directory holding the JSON store files

    Server Settings:
        server_host : str
            Server bind address (0.0.0.0 for local network)
        server_port : int
            Server port (1024-65535)
        log_level : str
            Root logging level used by the CLI entry point

    Examples
    --------
        >>> custom_config = StudioConfig(
        ...     store_backend="memory",
        ...     default_aspect_ratio="16:9",
        ... )
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STYLESTUDIO_",
        case_sensitive=False,
        extra="ignore",
    )

    # External model settings
    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "gemini_api_key", "STYLESTUDIO_GEMINI_API_KEY", "GEMINI_API_KEY"
        ),
        description="API key for the Gemini API",
    )
    extraction_model: str = Field(
        default="gemini-3.1-pro-preview",
        description="Descriptive/analysis model used for style extraction",
    )
    image_models: list[ImageModelOption] = Field(
        default_factory=lambda: [m.model_copy() for m in DEFAULT_IMAGE_MODELS],
        description="Image-synthesis models offered to the user",
    )
    default_image_model: str = Field(
        default="gemini-3.1-flash-image-preview",
        description="Image model used when a render request names none",
    )
    request_timeout: int = Field(
        default=60,
        description="Timeout in seconds for one external model call",
        ge=1,
        le=600,
    )

    # Generation settings
    aspect_ratios: list[str] = Field(
        default_factory=lambda: ["1:1", "16:9", "9:16", "4:3", "3:4"],
    )
    default_aspect_ratio: str = Field(default="1:1")

    # Style project policy
    min_style_images: int = Field(default=3, ge=1)
    max_style_images: int = Field(default=12, ge=1)

    # Storage
    store_backend: Literal["json", "memory"] = Field(
        default="json",
        description="Persistence backend (json files on disk, or in-memory)",
    )
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory holding the JSON store files",
    )

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(
        default=7860,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: str = Field(default="INFO")

    def __init__(self, **kwargs):
        """Initialize configuration and create the data directory.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        if self.store_backend == "json":
            self.data_dir.mkdir(parents=True, exist_ok=True)

    def image_model_ids(self) -> list[str]:
        """Return the identifiers of the configured image models."""
        return [m.id for m in self.image_models]


# Global configuration instance
# Loads values from environment variables (STYLESTUDIO_* prefix) and .env file.
config = StudioConfig()
