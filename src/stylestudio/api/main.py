"""Style Studio: FastAPI application.

This module is the single entry point for the web application.  It defines
the FastAPI ``app`` instance, all REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
- **Model proxy endpoints** (``/api/train``, ``/api/generate``) are stateless:
  they forward to the extraction and generation gateways and return the
  result.
- **Workspace endpoints** (``/api/projects/...``) go through
  :class:`~stylestudio.core.studio.StudioService`, which persists projects,
  style images and render jobs in the configured key-value store.
- Every response uses the envelope ``{"success": bool, ...}``.  Errors are
  normalised by exception handlers to ``{"success": false, "error": str}``.

Route handlers are plain ``def`` functions, so FastAPI runs them in its
threadpool and a slow model call does not block other requests.

Endpoints
---------
========  ===========================================  ==============================
Method    Path                                         Purpose
========  ===========================================  ==============================
GET       ``/api/config``                              Models, aspect ratios, limits
POST      ``/api/train``                               Extract a style descriptor
POST      ``/api/generate``                            Generate a styled image
GET       ``/api/projects``                            List projects
POST      ``/api/projects``                            Create a project
GET       ``/api/projects/{id}``                       Single project
DELETE    ``/api/projects/{id}``                       Cascade delete
GET       ``/api/projects/{id}/images``                Style images
GET       ``/api/projects/{id}/renders``               Render history
POST      ``/api/projects/{id}/renders``               Generate and save a render
DELETE    ``/api/projects/{id}/renders/{job}``         Delete one render
GET       ``/api/projects/{id}/renders/{job}/remix``   Remix seed inputs
POST      ``/api/projects/{id}/renders/{job}/remix``   Remix into a new render
GET       ``/api/projects/{id}/renders/{job}/download`` Output image file
========  ===========================================  ==============================

Usage
-----
CLI (installed entry point)::

    stylestudio

Direct invocation::

    python -m stylestudio.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from stylestudio import __version__
from stylestudio.api.models import (
    CreateProjectRequest,
    GenerateRequest,
    RemixRequest,
    RenderRequest,
    TrainRequest,
)
from stylestudio.core.config import config
from stylestudio.core.data_uri import decode_data_uri, extension_for
from stylestudio.core.errors import (
    ActionInProgress,
    ModelReturnedText,
    NotFound,
    StoreInconsistency,
    StyleStudioError,
    ValidationError,
)
from stylestudio.core.gateways import GeneratedImage
from stylestudio.core.studio import StudioService, build_service

logger = logging.getLogger(__name__)

_STATUS_CODES: list[tuple[type[StyleStudioError], int]] = [
    (ValidationError, 400),
    (NotFound, 404),
    (ActionInProgress, 409),
]


def _error_response(message: str, status_code: int, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra},
    )


# ---------------------------------------------------------------------------
# Exception handlers.
# ---------------------------------------------------------------------------


async def _studio_error_handler(request: Request, exc: StyleStudioError) -> JSONResponse:
    """Map a :class:`StyleStudioError` to its status code and envelope.

    Validation and lookup failures are client errors; everything else
    (upstream model failures, store inconsistencies) is a 500.
    """
    for exc_type, status_code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            logger.warning(f"{request.method} {request.url.path}: {exc}")
            return _error_response(str(exc), status_code)

    if isinstance(exc, ModelReturnedText):
        logger.warning(f"{request.method} {request.url.path}: model returned text only")
        return _error_response(str(exc), 500, text=exc.text, fallbackImage=True)

    if isinstance(exc, StoreInconsistency):
        return _error_response(str(exc), 500, orphanedKeys=exc.orphaned_keys)

    logger.error(f"{request.method} {request.url.path}: {exc}")
    return _error_response(str(exc), 500)


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return malformed or incomplete request bodies as 400 envelopes."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    return _error_response(f"Invalid request: {message}", 400)


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return _error_response(str(exc) or "Internal server error", 500)


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(service: StudioService | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        service: Pre-built service to use.  When omitted, one is wired from
            the global configuration during application startup.

    Returns:
        The configured application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "service", None) is None:
            app.state.service = build_service(config)
        logger.info(f"Style Studio {__version__} ready.")
        yield
        logger.info("Style Studio shutting down.")

    app = FastAPI(
        title="Style Studio",
        description="Extract reusable visual styles and render new images in them.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service

    # Allow cross-origin requests so the browser front-end can be served from
    # a different port during development.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StyleStudioError, _studio_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)

    _register_routes(app)
    return app


def _service(request: Request) -> StudioService:
    return request.app.state.service


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


def _register_routes(app: FastAPI) -> None:
    @app.get("/api/config")
    def get_config(request: Request) -> dict:
        """Return the options the front-end needs to build its forms."""
        cfg = _service(request).config
        return {
            "success": True,
            "version": __version__,
            "models": [m.model_dump() for m in cfg.image_models],
            "default_model": cfg.default_image_model,
            "aspect_ratios": cfg.aspect_ratios,
            "default_aspect_ratio": cfg.default_aspect_ratio,
            "min_style_images": cfg.min_style_images,
            "max_style_images": cfg.max_style_images,
        }

    # -- Model proxy --------------------------------------------------------

    @app.post("/api/train")
    def train(req: TrainRequest, request: Request) -> dict:
        """Extract a style descriptor from reference images.

        Returns:
            ``{"success": true, "descriptor": str}``.

        Raises:
            ValidationError: 400 if ``styleImages`` is missing or empty.
            ExtractionFailed: 500 if the model call fails.
        """
        if not req.style_images:
            raise ValidationError("Missing style images")
        descriptor = _service(request).extractor.extract_style(
            req.style_images, req.training_instruction
        )
        return {"success": True, "descriptor": descriptor}

    @app.post("/api/generate")
    def generate(req: GenerateRequest, request: Request) -> dict:
        """Generate an image in the given style.

        Returns:
            ``{"success": true, "image": dataURI}``, or
            ``{"success": true, "text": str, "fallbackImage": true}`` when the
            model answered without an image.

        Raises:
            ValidationError: 400 if ``styleDescriptor`` or ``modelName`` is
                missing.
            GenerationFailed: 500 if the model call fails.
        """
        if not req.style_descriptor or not req.model_name:
            raise ValidationError("Missing required fields")
        result = _service(request).generator.generate(
            descriptor=req.style_descriptor,
            model_id=req.model_name,
            aspect_ratio=req.aspect_ratio,
            instruction=req.instruction,
            reference_image=req.reference_image,
        )
        if isinstance(result, GeneratedImage):
            return {"success": True, "image": result.image}
        return {"success": True, "text": result.text, "fallbackImage": True}

    # -- Projects -----------------------------------------------------------

    @app.get("/api/projects")
    def list_projects(request: Request) -> dict:
        projects = _service(request).list_projects()
        return {"success": True, "projects": [p.to_json() for p in projects]}

    @app.post("/api/projects")
    def create_project(req: CreateProjectRequest, request: Request) -> dict:
        """Create a style project from images or from a raw prompt."""
        service = _service(request)
        if req.mode == "images":
            project = service.create_project_from_images(
                req.name,
                req.style_images,
                instruction=req.training_instruction,
                description=req.description,
            )
        else:
            project = service.create_project_from_prompt(
                req.name,
                req.raw_prompt or "",
                description=req.description,
                images=req.style_images,
            )
        return {"success": True, "project": project.to_json()}

    @app.get("/api/projects/{project_id}")
    def get_project(project_id: str, request: Request) -> dict:
        project = _service(request).get_project(project_id)
        return {"success": True, "project": project.to_json()}

    @app.delete("/api/projects/{project_id}")
    def delete_project(project_id: str, request: Request) -> dict:
        _service(request).delete_project(project_id)
        return {"success": True, "deleted": project_id}

    @app.get("/api/projects/{project_id}/images")
    def list_style_images(project_id: str, request: Request) -> dict:
        images = _service(request).list_style_images(project_id)
        return {"success": True, "images": [i.to_json() for i in images]}

    # -- Renders ------------------------------------------------------------

    @app.get("/api/projects/{project_id}/renders")
    def list_renders(project_id: str, request: Request) -> dict:
        jobs = _service(request).list_render_jobs(project_id)
        return {"success": True, "renders": [j.to_json() for j in jobs]}

    @app.post("/api/projects/{project_id}/renders")
    def create_render(project_id: str, req: RenderRequest, request: Request) -> dict:
        """Render with the project's style and save the result."""
        job = _service(request).generate_render(
            project_id,
            model_id=req.model_name,
            aspect_ratio=req.aspect_ratio,
            instruction=req.instruction,
            reference_image=req.reference_image,
        )
        return {"success": True, "render": job.to_json()}

    @app.delete("/api/projects/{project_id}/renders/{job_id}")
    def delete_render(project_id: str, job_id: str, request: Request) -> dict:
        _service(request).delete_render_job(project_id, job_id)
        return {"success": True, "deleted": job_id}

    @app.get("/api/projects/{project_id}/renders/{job_id}/remix")
    def get_remix_inputs(project_id: str, job_id: str, request: Request) -> dict:
        """Return a previous render's inputs to prefill a new request."""
        inputs = _service(request).remix_inputs(project_id, job_id)
        return {
            "success": True,
            "instruction": inputs.instruction,
            "referenceImage": inputs.reference_image,
        }

    @app.post("/api/projects/{project_id}/renders/{job_id}/remix")
    def remix_render(project_id: str, job_id: str, req: RemixRequest, request: Request) -> dict:
        job = _service(request).remix_render(
            project_id,
            job_id,
            model_id=req.model_name,
            aspect_ratio=req.aspect_ratio,
            instruction=req.instruction,
        )
        return {"success": True, "render": job.to_json()}

    @app.get("/api/projects/{project_id}/renders/{job_id}/download")
    def download_render(project_id: str, job_id: str, request: Request) -> Response:
        """Return a render's output image as a file download."""
        job = _service(request).get_render_job(project_id, job_id)
        mime_type, data = decode_data_uri(job.output_image)
        filename = f"styled_export_{job.created_at}.{extension_for(mime_type)}"
        return Response(
            content=data,
            media_type=mime_type,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~stylestudio.core.config.config` (which
    loads from ``STYLESTUDIO_SERVER_HOST`` and ``STYLESTUDIO_SERVER_PORT``
    environment variables).  Defaults to ``0.0.0.0:7860``.

    This function is registered as the ``stylestudio`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info(f"Starting Style Studio on {config.server_host}:{config.server_port}")

    uvicorn.run(
        "stylestudio.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
