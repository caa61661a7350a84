"""Persisted data model for Style Studio.

Three record types live in the store: :class:`Project`, :class:`StyleImage`
and :class:`RenderJob`.  They are serialised with camelCase keys (the format
the browser front-end reads) while Python code uses snake_case attributes.
Unset optional fields are omitted from the serialised form rather than
written as ``null``, so older records without a field read back unchanged.
"""

from __future__ import annotations

import time
import uuid

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Return a fresh globally unique record identifier."""
    return str(uuid.uuid4())


def now_ms() -> int:
    """Return the current wall-clock time in integer milliseconds."""
    return int(time.time() * 1000)


class StoredRecord(BaseModel):
    """Base for records persisted in the key-value store."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_json(self) -> dict:
        """Serialise to the camelCase dictionary written to the store."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Project(StoredRecord):
    """A style project.

    Attributes:
        id: Globally unique identifier, assigned at creation.
        name: Display name.
        description: Optional free-text description.
        style_descriptor: Extracted or user-supplied style text.  Set once at
            creation and never updated.
        training_instruction: Custom rules given to the extraction model.
        created_at: Creation time in epoch milliseconds (display ordering).
    """

    id: str = Field(default_factory=new_id)
    name: str
    description: str | None = None
    style_descriptor: str | None = None
    training_instruction: str | None = None
    created_at: int = Field(default_factory=now_ms)

    @property
    def is_trained(self) -> bool:
        """Whether the project carries a usable style descriptor."""
        return bool(self.style_descriptor and self.style_descriptor.strip())


class StyleImage(StoredRecord):
    """A reference image owned by a project."""

    id: str = Field(default_factory=new_id)
    project_id: str
    image_data: str
    created_at: int = Field(default_factory=now_ms)


class RenderJob(StoredRecord):
    """One generated image and the inputs that produced it.

    ``reference_image`` is present for image-conditioned renders and absent
    for text-only renders.
    """

    id: str = Field(default_factory=new_id)
    project_id: str
    reference_image: str | None = None
    user_instruction: str | None = None
    output_image: str
    created_at: int = Field(default_factory=now_ms)
