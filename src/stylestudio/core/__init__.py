"""Core functionality for Style Studio.

Architecture Overview
---------------------
The core package is layered leaf-first:

1. **Configuration** (config.py): Pydantic Settings, ``STYLESTUDIO_`` prefix.
2. **Data model** (models.py): Project, StyleImage and RenderJob records.
3. **Local store** (storage.py): key-value backends plus the three
   per-project collections.
4. **Model gateways** (gateways.py, prompts.py, data_uri.py): style
   extraction and image generation through the Gemini API.
5. **Orchestration** (studio.py): the project and render workflows.

Errors shared by every layer live in errors.py.

Usage Example
-------------
    from stylestudio.core import build_service, config

    service = build_service(config)
    project = service.create_project_from_prompt("Neon", "Vibrant neon palette...")
    job = service.generate_render(project.id, instruction="a city skyline at night")
"""

from stylestudio.core.config import StudioConfig, config
from stylestudio.core.studio import StudioService, build_service

__all__ = [
    "StudioConfig",
    "StudioService",
    "build_service",
    "config",
]
