"""Project and render orchestration for Style Studio.

:class:`StudioService` ties the :class:`~stylestudio.core.storage.LocalStore`
to the two model gateways and owns every workflow rule:

Project Lifecycle
-----------------
A project is created already "trained": its style descriptor is set once, at
creation, and never updated.  There are two ways in:

1. **From images**: at least ``min_style_images`` reference images (and an
   optional instruction) go through the extraction gateway; the returned
   text becomes the descriptor verbatim.
2. **From a prompt**: the user's raw text *is* the descriptor; the
   extraction gateway is never called.

Editing a style means creating a new project.

Render Lifecycle
----------------
Rendering requires a trained project and either a reference image or a
non-blank instruction.  Both checks happen before any network call.  A
generated image is saved as a new render job at the head of the project's
history; a text-only answer is reported as an error and nothing is saved.

Remixing seeds a new render from a previous job's instruction and reference
image.  The source job is never modified and the new job keeps no link to it.

Concurrency
-----------
Each action runs to completion; nothing is cancellable.  An
:class:`InFlightGuard` refuses to start an action that is already running for
the same scope (``ActionInProgress``), which is how a double-clicked button
is kept from firing twice.

Writes go through the store's lock.  A render finishing after its project
was deleted is discarded with ``NotFound`` rather than saved without a
parent.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass

from stylestudio.core.config import StudioConfig
from stylestudio.core.data_uri import parse_data_uri
from stylestudio.core.errors import ActionInProgress, ModelReturnedText, NotFound, ValidationError
from stylestudio.core.gateways import (
    GeneratedImage,
    ImageGenerationGateway,
    StyleExtractionGateway,
)
from stylestudio.core.models import Project, RenderJob, StyleImage
from stylestudio.core.storage import LocalStore, create_backend

logger = logging.getLogger(__name__)


class InFlightGuard:
    """Track running actions so the same one cannot start twice.

    Keys are ``(action, scope)`` pairs, e.g. ``("generate", project_id)``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._running: set[tuple[str, str]] = set()

    @contextmanager
    def hold(self, action: str, scope: str = "") -> Iterator[None]:
        key = (action, scope)
        with self._lock:
            if key in self._running:
                raise ActionInProgress(f"A {action} request is already in progress")
            self._running.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._running.discard(key)

    def is_running(self, action: str, scope: str = "") -> bool:
        with self._lock:
            return (action, scope) in self._running


@dataclass(frozen=True)
class RenderInputs:
    """Inputs that seed a render request (used by remix)."""

    instruction: str | None = None
    reference_image: str | None = None


def _blank(value: str | None) -> bool:
    return not (value and value.strip())


class StudioService:
    """Workflow layer over the store and the model gateways.

    Args:
        config: Application configuration (policy limits and defaults).
        store: Project/image/render persistence.
        extractor: Style extraction gateway.
        generator: Image generation gateway.
    """

    def __init__(
        self,
        config: StudioConfig,
        store: LocalStore,
        extractor: StyleExtractionGateway,
        generator: ImageGenerationGateway,
    ) -> None:
        self.config = config
        self.store = store
        self.extractor = extractor
        self.generator = generator
        self.guard = InFlightGuard()

    # -- Projects -----------------------------------------------------------

    def list_projects(self) -> list[Project]:
        return self.store.list_projects()

    def get_project(self, project_id: str) -> Project:
        """Return a project or raise :class:`NotFound`."""
        project = self.store.get_project(project_id)
        if project is None:
            raise NotFound("Project not found")
        return project

    def _check_image_count(self, images: Sequence[str], minimum: int) -> None:
        if len(images) < minimum:
            raise ValidationError(
                f"Please provide a name and at least {minimum} style images."
            )
        if len(images) > self.config.max_style_images:
            raise ValidationError(
                f"At most {self.config.max_style_images} style images are allowed."
            )

    def create_project_from_images(
        self,
        name: str,
        images: Sequence[str],
        instruction: str | None = None,
        description: str | None = None,
    ) -> Project:
        """Create a project whose descriptor is extracted from *images*.

        Raises:
            ValidationError: Blank name or an image count outside the
                configured range.  Raised before any network call.
            ExtractionFailed: The extraction gateway failed; nothing is saved.
        """
        if _blank(name):
            raise ValidationError(
                f"Please provide a name and at least {self.config.min_style_images} style images."
            )
        self._check_image_count(images, self.config.min_style_images)

        with self.guard.hold("train"):
            descriptor = self.extractor.extract_style(images, instruction)

        with self.store.lock:
            project = self.store.create_project(
                name=name.strip(),
                description=description,
                style_descriptor=descriptor,
                training_instruction=instruction or "",
            )
            self.store.append_style_images(project.id, images)
        return project

    def create_project_from_prompt(
        self,
        name: str,
        raw_prompt: str,
        description: str | None = None,
        images: Sequence[str] = (),
    ) -> Project:
        """Create a project whose descriptor is the user's raw text.

        Optional *images* are stored as visual reference only; they are not
        analysed, but each must be a base64 data URI.

        Raises:
            ValidationError: Blank name or prompt, too many images, or an
                image that is not a data URI.
        """
        if _blank(name) or _blank(raw_prompt):
            raise ValidationError("Please provide a name and your style prompt.")
        self._check_image_count(images, 0)
        for image in images:
            parse_data_uri(image)

        with self.store.lock:
            project = self.store.create_project(
                name=name.strip(),
                description=description,
                style_descriptor=raw_prompt,
                training_instruction="",
            )
            if images:
                self.store.append_style_images(project.id, images)
        return project

    def delete_project(self, project_id: str) -> None:
        """Delete a project together with its style images and renders."""
        self.get_project(project_id)
        with self.guard.hold("delete", project_id):
            self.store.delete_project(project_id)

    def list_style_images(self, project_id: str) -> list[StyleImage]:
        self.get_project(project_id)
        return self.store.list_style_images(project_id)

    # -- Renders ------------------------------------------------------------

    def list_render_jobs(self, project_id: str) -> list[RenderJob]:
        self.get_project(project_id)
        return self.store.list_render_jobs(project_id)

    def get_render_job(self, project_id: str, job_id: str) -> RenderJob:
        """Return a render job or raise :class:`NotFound`."""
        self.get_project(project_id)
        job = self.store.get_render_job(project_id, job_id)
        if job is None:
            raise NotFound("Render not found")
        return job

    def generate_render(
        self,
        project_id: str,
        model_id: str | None = None,
        aspect_ratio: str | None = None,
        instruction: str | None = None,
        reference_image: str | None = None,
    ) -> RenderJob:
        """Render an image in the project's style and save it as a job.

        Raises:
            NotFound: Unknown project.
            ValidationError: The project has no descriptor, or neither a
                reference image nor an instruction was given.  Raised before
                any network call.
            GenerationFailed: The generation gateway failed.
            ModelReturnedText: The model answered without an image.
        """
        project = self.get_project(project_id)
        if not project.is_trained:
            logger.warning(f"Refusing to render untrained project {project_id}")
            raise ValidationError(
                "This project doesn't have a trained Style Descriptor yet. "
                "Try creating a new project."
            )
        if not reference_image and _blank(instruction):
            raise ValidationError("Please upload a reference image or enter an instruction.")

        model_id = model_id or self.config.default_image_model
        aspect_ratio = aspect_ratio or self.config.default_aspect_ratio

        with self.guard.hold("generate", project_id):
            result = self.generator.generate(
                descriptor=project.style_descriptor,
                model_id=model_id,
                aspect_ratio=aspect_ratio,
                instruction=instruction,
                reference_image=reference_image,
            )

        if not isinstance(result, GeneratedImage):
            raise ModelReturnedText(result.text)

        # The project may have been deleted while the model was working.
        with self.store.lock:
            if self.store.get_project(project_id) is None:
                logger.warning(f"Project {project_id} deleted during generation; render discarded")
                raise NotFound("Project not found")
            return self.store.append_render_job(
                project_id,
                output_image=result.image,
                reference_image=reference_image,
                user_instruction=instruction,
            )

    def remix_inputs(self, project_id: str, job_id: str) -> RenderInputs:
        """Return the inputs of a previous render, to seed a new request."""
        job = self.get_render_job(project_id, job_id)
        return RenderInputs(instruction=job.user_instruction, reference_image=job.reference_image)

    def remix_render(
        self,
        project_id: str,
        job_id: str,
        model_id: str | None = None,
        aspect_ratio: str | None = None,
        instruction: str | None = None,
    ) -> RenderJob:
        """Create a new render from a previous job's inputs.

        A non-blank *instruction* replaces the stored one; a blank one counts
        as not given.  The source job is left untouched.
        """
        seed = self.remix_inputs(project_id, job_id)
        return self.generate_render(
            project_id,
            model_id=model_id,
            aspect_ratio=aspect_ratio,
            instruction=seed.instruction if _blank(instruction) else instruction,
            reference_image=seed.reference_image,
        )

    def delete_render_job(self, project_id: str, job_id: str) -> None:
        """Delete one render job; other jobs and style images are untouched."""
        self.get_render_job(project_id, job_id)
        self.store.delete_render_job(project_id, job_id)


def build_service(config: StudioConfig) -> StudioService:
    """Wire a :class:`StudioService` from configuration."""
    store = LocalStore(create_backend(config.store_backend, config.data_dir))
    service = StudioService(
        config,
        store,
        StyleExtractionGateway(config),
        ImageGenerationGateway(config),
    )
    logger.info(f"StudioService initialised ({config.store_backend} store)")
    return service
