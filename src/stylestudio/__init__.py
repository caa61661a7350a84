"""Style Studio - extract reusable visual styles and render new images in them."""

__version__ = "0.1.0"

from stylestudio.core.config import StudioConfig, config
from stylestudio.core.studio import StudioService, build_service

__all__ = [
    "StudioConfig",
    "StudioService",
    "build_service",
    "config",
]
