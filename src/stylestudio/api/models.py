"""Pydantic request models for the Style Studio API.

These models define the JSON schema for every POST endpoint.  Field names are
camelCase on the wire (``styleDescriptor``, ``referenceImage``...) and
snake_case in Python.

Required-field checks for the two model proxy endpoints are done in the route
handlers rather than by the schema, so a missing field produces the same
``{"success": false, "error": ...}`` message whether it was absent, ``null``
or an empty string.

Models
------
TrainRequest
    Payload for ``POST /api/train``: reference images plus optional rules.
GenerateRequest
    Payload for ``POST /api/generate``: descriptor, model, optional reference
    image, instruction and aspect ratio.
CreateProjectRequest
    Payload for ``POST /api/projects``: create a project from images or from a
    raw style prompt.
RenderRequest
    Payload for ``POST /api/projects/{id}/renders``.
RemixRequest
    Payload for ``POST /api/projects/{id}/renders/{job_id}/remix``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for request bodies: camelCase aliases, snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TrainRequest(ApiModel):
    """Request body for ``POST /api/train``.

    Attributes:
        style_images: Data-URI reference images.  Required and non-empty.
        training_instruction: Optional custom style rules.
    """

    style_images: list[str] | None = Field(
        default=None,
        description="Data-URI reference images (required, non-empty).",
    )
    training_instruction: str | None = Field(
        default=None,
        description="Optional custom rules weighed into the descriptor.",
    )


class GenerateRequest(ApiModel):
    """Request body for ``POST /api/generate``.

    Attributes:
        style_descriptor: Style text to render in.  Required.
        reference_image: Optional data-URI image.  Omit for text-to-image.
        instruction: Optional free-text instruction.
        model_name: Image model identifier.  Required.
        aspect_ratio: Optional aspect ratio such as ``"16:9"``.
    """

    style_descriptor: str | None = Field(default=None, description="Style descriptor text.")
    reference_image: str | None = Field(default=None, description="Data-URI reference image.")
    instruction: str | None = Field(default=None, description="Custom instruction.")
    model_name: str | None = Field(default=None, description="Image model identifier.")
    aspect_ratio: str | None = Field(default=None, description="Aspect ratio, e.g. '16:9'.")


class CreateProjectRequest(ApiModel):
    """Request body for ``POST /api/projects``.

    Attributes:
        name: Project name.
        description: Optional description.
        mode: ``"images"`` extracts the descriptor from ``style_images``;
            ``"prompt"`` uses ``raw_prompt`` verbatim.
        style_images: Data-URI images.  Analysed in images mode, stored as
            visual reference only in prompt mode.
        training_instruction: Custom rules for images mode.
        raw_prompt: The style descriptor for prompt mode.
    """

    name: str = Field(..., description="Project name.")
    description: str | None = Field(default=None)
    mode: Literal["images", "prompt"] = Field(default="images")
    style_images: list[str] = Field(default_factory=list)
    training_instruction: str | None = Field(default=None)
    raw_prompt: str | None = Field(default=None)


class RenderRequest(ApiModel):
    """Request body for ``POST /api/projects/{id}/renders``.

    A reference image, a non-blank instruction, or both must be given.
    ``model_name`` and ``aspect_ratio`` fall back to the configured defaults.
    """

    model_name: str | None = Field(default=None)
    aspect_ratio: str | None = Field(default=None)
    instruction: str | None = Field(default=None)
    reference_image: str | None = Field(default=None)


class RemixRequest(ApiModel):
    """Request body for ``POST /api/projects/{id}/renders/{job_id}/remix``.

    ``instruction`` replaces the source job's instruction when given.
    """

    model_name: str | None = Field(default=None)
    aspect_ratio: str | None = Field(default=None)
    instruction: str | None = Field(default=None)
